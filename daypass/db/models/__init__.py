from daypass.db.models.audit import AuditLog
from daypass.db.models.guest import Acceptance, Guest
from daypass.db.models.invitation import Invitation, InvitationStatus
from daypass.db.models.user import User, UserRole
from daypass.db.models.visit import Discount, Policy, Visit

__all__ = [
    "Acceptance",
    "AuditLog",
    "Discount",
    "Guest",
    "Invitation",
    "InvitationStatus",
    "Policy",
    "User",
    "UserRole",
    "Visit",
]
