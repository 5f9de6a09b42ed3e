"""Role assignment and access grant models.

Both tables are append-only trails: revocation stamps ``revoked_at`` and
the row is kept. A partial unique index allows at most one active row
per key.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from storeauth.db.base import Base

ACTIVE_ONLY = text("revoked_at IS NULL")


class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(50), nullable=False)

    # Who assigned / revoked this role (None for system actions)
    assigned_by = Column(String(36), nullable=True)
    assigned_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    revoked_by = Column(String(36), nullable=True)

    __table_args__ = (
        Index(
            "uq_user_roles_active",
            "user_id",
            "role",
            unique=True,
            sqlite_where=ACTIVE_ONLY,
            postgresql_where=ACTIVE_ONLY,
        ),
    )

    # Relationships
    profile = relationship("Profile", back_populates="roles", foreign_keys=[user_id])

    def __repr__(self) -> str:
        return f"<UserRole {self.role} for {self.user_id}>"


class AccessGrant(Base):
    """
    Explicit store or department access for a principal.

    ``scope_id`` carries no foreign key: deleting a store or department
    leaves the grant dangling, and the resolver skips it.
    """
    __tablename__ = "access_grants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    scope_type = Column(String(20), nullable=False)  # store | department
    scope_id = Column(String(36), nullable=False, index=True)

    granted_by = Column(String(36), nullable=True)
    granted_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    revoked_by = Column(String(36), nullable=True)

    __table_args__ = (
        Index(
            "uq_access_grants_active",
            "user_id",
            "scope_type",
            "scope_id",
            unique=True,
            sqlite_where=ACTIVE_ONLY,
            postgresql_where=ACTIVE_ONLY,
        ),
    )

    def __repr__(self) -> str:
        return f"<AccessGrant {self.scope_type} {self.scope_id} for {self.user_id}>"
