"""
Bearer token helpers.
"""
from datetime import timedelta

from jose import jwt

from core.config import settings
from core.security import ALGORITHM, create_access_token, decode_access_token, get_user_id_from_token


def test_token_carries_subject():
    token = create_access_token({"sub": "U1"})
    assert get_user_id_from_token(token) == "U1"
    assert decode_access_token(token)["exp"] > 0


def test_expired_token_is_rejected():
    token = create_access_token({"sub": "U1"}, expires_delta=timedelta(seconds=-5))
    assert decode_access_token(token) is None
    assert get_user_id_from_token(token) is None


def test_foreign_signature_is_rejected():
    token = jwt.encode({"sub": "U1"}, "x" * 40, algorithm=ALGORITHM)
    assert get_user_id_from_token(token) is None


def test_token_without_subject():
    token = jwt.encode({"role": "official"}, settings.SECRET_KEY, algorithm=ALGORITHM)
    assert get_user_id_from_token(token) is None


def test_garbage_token():
    assert get_user_id_from_token("not-a-jwt") is None
