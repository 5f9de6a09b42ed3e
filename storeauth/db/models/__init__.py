"""Database models for storeauth."""

from storeauth.db.models.org import StoreGroup, Store, Department
from storeauth.db.models.profile import Profile
from storeauth.db.models.access import UserRole, AccessGrant
from storeauth.db.models.audit import AuditLog

__all__ = [
    "StoreGroup",
    "Store",
    "Department",
    "Profile",
    "UserRole",
    "AccessGrant",
    "AuditLog",
]
