"""Audit log model for storeauth.

Rows are written once and never updated. Every Deny lands here with its
reason code; Allows only when ``audit_allows`` is enabled.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from sqlalchemy import Column, String, DateTime, JSON

from storeauth.core.audit import AuditSeverity
from storeauth.db.base import Base


class AuditLog(Base):
    """Immutable record of one authorization outcome."""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Actor information
    user_id = Column(String(36), nullable=False, index=True)

    # Action details
    action = Column(String(50), nullable=False, index=True)
    resource_type = Column(String(50), nullable=False, index=True)
    resource_id = Column(String(36), nullable=True, index=True)

    # Outcome
    effect = Column(String(10), nullable=False)
    reason = Column(String(50), nullable=False, index=True)
    details = Column(JSON, nullable=True)

    # Metadata
    severity = Column(String(20), nullable=False, default="info", index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.effect} {self.action} on {self.resource_type} by {self.user_id}>"

    @classmethod
    def create_entry(
        cls,
        user_id: str,
        action: str,
        resource_type: str,
        effect: str,
        reason: str,
        *,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        created_at: Optional[datetime] = None,
    ) -> "AuditLog":
        """
        Factory method to create a new audit log entry.

        Args:
            user_id: Principal whose request was decided ("system" for trusted calls)
            action: Action evaluated (e.g. 'read', 'update', 'grant_access')
            resource_type: Type of resource (e.g. 'department', 'principal')
            effect: 'allow' or 'deny'
            reason: Decision reason code
            resource_id: ID of the affected resource
            details: Additional context
            severity: Log severity level
            created_at: Decision time, defaults to now
        """
        return cls(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            effect=effect,
            reason=reason,
            details=details or None,
            severity=severity.value if isinstance(severity, AuditSeverity) else severity,
            created_at=created_at or datetime.now(timezone.utc),
        )
