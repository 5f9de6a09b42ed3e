"""Organization tree models: store groups, stores and departments."""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from storeauth.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoreGroup(Base):
    """A tenant boundary owning one or more stores."""
    __tablename__ = "store_groups"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    # Relationships
    stores = relationship("Store", back_populates="group")


class Store(Base):
    __tablename__ = "stores"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    group_id = Column(String(36), ForeignKey("store_groups.id"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    # Relationships
    group = relationship("StoreGroup", back_populates="stores")
    departments = relationship("Department", back_populates="store")

    def __repr__(self) -> str:
        return f"<Store {self.name} ({self.id})>"


class Department(Base):
    """
    A department inside a store.

    ``manager_id`` designates the department manager whose narrow scope
    covers this department.
    """
    __tablename__ = "departments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column(String(36), ForeignKey("stores.id"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    department_type = Column(String(50), nullable=True)  # sales, service, parts, ...
    manager_id = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, default=_utcnow)

    # Relationships
    store = relationship("Store", back_populates="departments")
    manager = relationship("Profile", foreign_keys=[manager_id])
