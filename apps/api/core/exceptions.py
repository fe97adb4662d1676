"""
Error taxonomy shared by the guard, the transaction executor and the
approval workflows.

Every error carries an ErrorKind tag so the boundary (and the tests) can
match failure categories exhaustively instead of inspecting messages:

    not logged in            -> AUTHENTICATION  (401)
    logged in, wrong role    -> AUTHORIZATION   (403)
    right role, not yours    -> OWNERSHIP       (403)
    yours, wrong state       -> INVALID_TRANSITION (409)
    entity absent            -> NOT_FOUND       (404)
    bad payload              -> VALIDATION      (400)
    duplicate                -> CONFLICT        (409)
    unit of work failed      -> TRANSACTION     (500)
"""
from enum import Enum
from typing import Optional

from fastapi import status


class ErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    OWNERSHIP = "ownership"
    INVALID_TRANSITION = "invalid_transition"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    TRANSACTION = "transaction"


STATUS_BY_KIND = {
    ErrorKind.AUTHENTICATION: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorKind.OWNERSHIP: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.TRANSACTION: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class PlatformError(Exception):
    """Base error with a category tag and a user-safe detail message."""

    kind: ErrorKind = ErrorKind.TRANSACTION
    default_detail = "Request failed"

    def __init__(self, detail: Optional[str] = None, error_code: Optional[str] = None):
        self.detail = detail or self.default_detail
        self.error_code = error_code or self.kind.name
        super().__init__(self.detail)

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500


class AuthenticationError(PlatformError):
    """No resolvable actor."""

    kind = ErrorKind.AUTHENTICATION
    default_detail = "Authentication required"


class AuthorizationError(PlatformError):
    """Actor's role does not hold the permission."""

    kind = ErrorKind.AUTHORIZATION
    default_detail = "Insufficient permissions"


class OwnershipError(PlatformError):
    """Actor holds the permission but is not the authorized party for this resource."""

    kind = ErrorKind.OWNERSHIP
    default_detail = "Resource access denied"


class InvalidTransitionError(PlatformError):
    """Requested transition is not legal from the entity's current status."""

    kind = ErrorKind.INVALID_TRANSITION
    default_detail = "Action not allowed in the current state"


class NotFoundError(PlatformError):
    """Resource not found."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, identifier: Optional[str] = None):
        detail = f"{resource} not found" if identifier is None else f"{resource} not found: {identifier}"
        super().__init__(detail)
        self.resource = resource
        self.identifier = identifier


class ValidationError(PlatformError):
    """Validation error."""

    kind = ErrorKind.VALIDATION

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(detail, error_code=error_code)
        self.field = field


class ConflictError(PlatformError):
    """Resource conflict (e.g., duplicate entry)."""

    kind = ErrorKind.CONFLICT
    default_detail = "Resource already exists"


class TransactionFailedError(PlatformError):
    """
    A unit of work failed on the server side.

    `detail` stays generic for end users; the original error is kept on
    `cause` and in the transaction log line for operators.
    """

    kind = ErrorKind.TRANSACTION
    default_detail = "The operation could not be completed"

    def __init__(self, transaction_id: str, cause: Optional[BaseException] = None):
        super().__init__()
        self.transaction_id = transaction_id
        self.cause = cause
