"""
Role-permission registry.

Design:
1. Single role per user (no multi-role composition)
2. Officials double as administrators
3. Coach-athlete relationships are explicit (ownership-based, see core.authz)

The registry is an immutable constant loaded once at import. It is validated
at import time: a Permission with no role set is a configuration bug and
fails loudly instead of silently granting or denying.
"""
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping


class Role(str, Enum):
    ATHLETE = "athlete"
    COACH = "coach"
    SPECIALIST = "specialist"
    OFFICIAL = "official"


class Permission(str, Enum):
    # Verification & approval (officials)
    VERIFY_ACHIEVEMENT = "VERIFY_ACHIEVEMENT"
    VERIFY_CERTIFICATION = "VERIFY_CERTIFICATION"
    VERIFY_DOCUMENTS = "VERIFY_DOCUMENTS"
    APPROVE_REGISTRATION = "APPROVE_REGISTRATION"
    REJECT_REGISTRATION = "REJECT_REGISTRATION"
    BROADCAST_NOTIFICATION = "BROADCAST_NOTIFICATION"
    VIEW_AUDIT_LOGS = "VIEW_AUDIT_LOGS"

    # Opportunity management (officials)
    CREATE_OPPORTUNITY = "CREATE_OPPORTUNITY"
    UPDATE_OPPORTUNITY = "UPDATE_OPPORTUNITY"
    DELETE_OPPORTUNITY = "DELETE_OPPORTUNITY"
    SHORTLIST_OPPORTUNITY = "SHORTLIST_OPPORTUNITY"
    MANAGE_SPORT_REGISTRATIONS = "MANAGE_SPORT_REGISTRATIONS"

    # Athlete actions
    SUBMIT_ACHIEVEMENT = "SUBMIT_ACHIEVEMENT"
    VIEW_OWN_ACHIEVEMENTS = "VIEW_OWN_ACHIEVEMENTS"
    VIEW_OWN_TRAINING_PLAN = "VIEW_OWN_TRAINING_PLAN"
    SUBMIT_DAILY_TRAINING_FORM = "SUBMIT_DAILY_TRAINING_FORM"
    APPLY_TO_OPPORTUNITY = "APPLY_TO_OPPORTUNITY"
    REQUEST_TRAINING_PAUSE = "REQUEST_TRAINING_PAUSE"
    REQUEST_MEDICAL_LEAVE = "REQUEST_MEDICAL_LEAVE"
    REQUEST_PROFILE_CHANGE = "REQUEST_PROFILE_CHANGE"

    # Coach actions
    CREATE_TRAINING_PLAN = "CREATE_TRAINING_PLAN"
    UPDATE_TRAINING_PLAN = "UPDATE_TRAINING_PLAN"
    DELETE_TRAINING_PLAN = "DELETE_TRAINING_PLAN"
    CREATE_TRAINING_SESSION = "CREATE_TRAINING_SESSION"
    UPDATE_TRAINING_SESSION = "UPDATE_TRAINING_SESSION"
    VIEW_ATHLETE_TRAINING_FORMS = "VIEW_ATHLETE_TRAINING_FORMS"
    VIEW_ASSIGNED_ATHLETES = "VIEW_ASSIGNED_ATHLETES"
    APPROVE_TRAINING_PAUSE = "APPROVE_TRAINING_PAUSE"
    SUBMIT_CERTIFICATION = "SUBMIT_CERTIFICATION"
    APPROVE_SPORT_REGISTRATION = "APPROVE_SPORT_REGISTRATION"
    DECIDE_MEDICAL_LEAVE = "DECIDE_MEDICAL_LEAVE"

    # Specialist actions
    CREATE_CONSULTATION = "CREATE_CONSULTATION"
    UPDATE_CONSULTATION = "UPDATE_CONSULTATION"
    MANAGE_PHYSIOTHERAPY_SLOTS = "MANAGE_PHYSIOTHERAPY_SLOTS"
    CREATE_MEDICAL_REFERRAL = "CREATE_MEDICAL_REFERRAL"
    ACCEPT_MEDICAL_REFERRAL = "ACCEPT_MEDICAL_REFERRAL"
    COMPLETE_MEDICAL_REFERRAL = "COMPLETE_MEDICAL_REFERRAL"
    MANAGE_AVAILABILITY = "MANAGE_AVAILABILITY"
    VIEW_SPECIALIST_CLIENTS = "VIEW_SPECIALIST_CLIENTS"
    REVIEW_MEDICAL_LEAVE = "REVIEW_MEDICAL_LEAVE"

    # Universal (all authenticated users)
    SEND_MESSAGE = "SEND_MESSAGE"
    VIEW_MESSAGES = "VIEW_MESSAGES"
    VIEW_NOTIFICATIONS = "VIEW_NOTIFICATIONS"
    UPDATE_OWN_PROFILE = "UPDATE_OWN_PROFILE"
    VIEW_OWN_PROFILE = "VIEW_OWN_PROFILE"
    SUBMIT_VERIFICATION_DOCUMENT = "SUBMIT_VERIFICATION_DOCUMENT"

    # Communities
    VIEW_COMMUNITIES = "VIEW_COMMUNITIES"
    CREATE_COMMUNITY = "CREATE_COMMUNITY"
    MANAGE_COMMUNITY = "MANAGE_COMMUNITY"


_ALL_ROLES = frozenset(Role)

_REGISTRY: Mapping[Permission, FrozenSet[Role]] = MappingProxyType({
    Permission.VERIFY_ACHIEVEMENT: frozenset({Role.OFFICIAL}),
    Permission.VERIFY_CERTIFICATION: frozenset({Role.OFFICIAL}),
    Permission.VERIFY_DOCUMENTS: frozenset({Role.OFFICIAL}),
    Permission.APPROVE_REGISTRATION: frozenset({Role.OFFICIAL}),
    Permission.REJECT_REGISTRATION: frozenset({Role.OFFICIAL}),
    Permission.BROADCAST_NOTIFICATION: frozenset({Role.OFFICIAL}),
    Permission.VIEW_AUDIT_LOGS: frozenset({Role.OFFICIAL}),

    Permission.CREATE_OPPORTUNITY: frozenset({Role.OFFICIAL}),
    Permission.UPDATE_OPPORTUNITY: frozenset({Role.OFFICIAL}),
    Permission.DELETE_OPPORTUNITY: frozenset({Role.OFFICIAL}),
    Permission.SHORTLIST_OPPORTUNITY: frozenset({Role.OFFICIAL}),
    Permission.MANAGE_SPORT_REGISTRATIONS: frozenset({Role.OFFICIAL}),

    Permission.SUBMIT_ACHIEVEMENT: frozenset({Role.ATHLETE}),
    Permission.VIEW_OWN_ACHIEVEMENTS: frozenset({Role.ATHLETE, Role.COACH, Role.OFFICIAL}),
    Permission.VIEW_OWN_TRAINING_PLAN: frozenset({Role.ATHLETE}),
    Permission.SUBMIT_DAILY_TRAINING_FORM: frozenset({Role.ATHLETE}),
    Permission.APPLY_TO_OPPORTUNITY: frozenset({Role.ATHLETE}),
    Permission.REQUEST_TRAINING_PAUSE: frozenset({Role.ATHLETE}),
    Permission.REQUEST_MEDICAL_LEAVE: frozenset({Role.ATHLETE}),
    Permission.REQUEST_PROFILE_CHANGE: frozenset({Role.ATHLETE}),

    Permission.CREATE_TRAINING_PLAN: frozenset({Role.COACH}),
    Permission.UPDATE_TRAINING_PLAN: frozenset({Role.COACH}),
    Permission.DELETE_TRAINING_PLAN: frozenset({Role.COACH}),
    Permission.CREATE_TRAINING_SESSION: frozenset({Role.COACH}),
    Permission.UPDATE_TRAINING_SESSION: frozenset({Role.COACH}),
    Permission.VIEW_ATHLETE_TRAINING_FORMS: frozenset({Role.COACH}),
    Permission.VIEW_ASSIGNED_ATHLETES: frozenset({Role.COACH}),
    Permission.APPROVE_TRAINING_PAUSE: frozenset({Role.COACH}),
    Permission.SUBMIT_CERTIFICATION: frozenset({Role.COACH}),
    Permission.APPROVE_SPORT_REGISTRATION: frozenset({Role.COACH}),
    Permission.DECIDE_MEDICAL_LEAVE: frozenset({Role.COACH}),

    Permission.CREATE_CONSULTATION: frozenset({Role.SPECIALIST}),
    Permission.UPDATE_CONSULTATION: frozenset({Role.SPECIALIST}),
    Permission.MANAGE_PHYSIOTHERAPY_SLOTS: frozenset({Role.SPECIALIST}),
    Permission.CREATE_MEDICAL_REFERRAL: frozenset({Role.SPECIALIST}),
    Permission.ACCEPT_MEDICAL_REFERRAL: frozenset({Role.SPECIALIST}),
    Permission.COMPLETE_MEDICAL_REFERRAL: frozenset({Role.SPECIALIST}),
    Permission.MANAGE_AVAILABILITY: frozenset({Role.SPECIALIST}),
    Permission.VIEW_SPECIALIST_CLIENTS: frozenset({Role.SPECIALIST}),
    Permission.REVIEW_MEDICAL_LEAVE: frozenset({Role.SPECIALIST}),

    Permission.SEND_MESSAGE: _ALL_ROLES,
    Permission.VIEW_MESSAGES: _ALL_ROLES,
    Permission.VIEW_NOTIFICATIONS: _ALL_ROLES,
    Permission.UPDATE_OWN_PROFILE: _ALL_ROLES,
    Permission.VIEW_OWN_PROFILE: _ALL_ROLES,
    Permission.SUBMIT_VERIFICATION_DOCUMENT: _ALL_ROLES,

    Permission.VIEW_COMMUNITIES: _ALL_ROLES,
    Permission.CREATE_COMMUNITY: frozenset({Role.OFFICIAL, Role.COACH}),
    Permission.MANAGE_COMMUNITY: frozenset({Role.OFFICIAL}),
})


def validate_registry(registry: Mapping[Permission, FrozenSet[Role]] = _REGISTRY) -> None:
    """Raise RuntimeError unless every Permission maps to a non-empty set of Roles."""
    missing = [p.value for p in Permission if p not in registry]
    if missing:
        raise RuntimeError(f"Permissions missing from registry: {', '.join(missing)}")
    empty = [p.value for p, roles in registry.items() if not roles]
    if empty:
        raise RuntimeError(f"Permissions with no allowed roles: {', '.join(empty)}")
    for permission, roles in registry.items():
        stray = [r for r in roles if not isinstance(r, Role)]
        if stray:
            raise RuntimeError(f"Permission {permission.value} lists unknown roles: {stray}")


validate_registry()


def roles_for(permission: Permission) -> FrozenSet[Role]:
    """Roles allowed to hold `permission`."""
    return _REGISTRY[Permission(permission)]


def has_permission(role: Role, permission: Permission) -> bool:
    """Check if a role has a specific permission. Unknown role strings never match."""
    try:
        role = Role(role)
    except ValueError:
        return False
    return role in roles_for(permission)


def permissions_for(role: Role) -> FrozenSet[Permission]:
    """Reverse lookup: every permission `role` holds."""
    role = Role(role)
    return frozenset(p for p, roles in _REGISTRY.items() if role in roles)


def registry() -> Mapping[Permission, FrozenSet[Role]]:
    """Read-only view of the whole table, for introspection."""
    return _REGISTRY
