"""Person record model."""

from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey
from sqlalchemy.orm import relationship

from storeauth.db.base import Base


class Profile(Base):
    """
    A principal's person record.

    ``store_id`` and ``store_group_id`` are the home placement; a profile
    with only a home store belongs to that store's group.
    """
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    full_name = Column(String(255), nullable=False, default="")
    email = Column(String(255), nullable=True, index=True)

    # Home placement
    store_id = Column(String(36), ForeignKey("stores.id", ondelete="SET NULL"), nullable=True, index=True)
    store_group_id = Column(String(36), ForeignKey("store_groups.id", ondelete="SET NULL"), nullable=True, index=True)
    reports_to = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    # Privileged attributes (masked for most viewers)
    birthday_month = Column(Integer, nullable=True)
    birthday_day = Column(Integer, nullable=True)
    start_month = Column(Integer, nullable=True)
    start_year = Column(Integer, nullable=True)
    last_sign_in_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    roles = relationship("UserRole", back_populates="profile", foreign_keys="UserRole.user_id")

    def __repr__(self) -> str:
        return f"<Profile {self.full_name} ({self.id})>"
