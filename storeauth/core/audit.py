"""Decision audit trail.

Every Deny is recorded with its reason code; callers only ever see a
uniform Deny. Escalation attempts are recorded at critical severity so
they stand apart from ordinary scope mismatches.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from storeauth.common.logger import AUDIT_LOGGER
from storeauth.core.policy.engine import Decision, DecisionReason

audit_logger = logging.getLogger(AUDIT_LOGGER)


class AuditSeverity(str, Enum):
    """Severity levels for audit entries."""
    INFO = "info"           # Allowed operations
    WARNING = "warning"     # Ordinary denials
    ERROR = "error"         # Fail-closed denials (timeouts, lookup failures)
    CRITICAL = "critical"   # Escalation attempts


_SEVERITY_BY_REASON = {
    DecisionReason.ESCALATION: AuditSeverity.CRITICAL,
    DecisionReason.TIMEOUT: AuditSeverity.ERROR,
    DecisionReason.FACT_ERROR: AuditSeverity.ERROR,
}

_LOG_LEVEL = {
    AuditSeverity.INFO: logging.INFO,
    AuditSeverity.WARNING: logging.WARNING,
    AuditSeverity.ERROR: logging.ERROR,
    AuditSeverity.CRITICAL: logging.CRITICAL,
}


@dataclass(frozen=True)
class AuditEntry:
    """One audited engine outcome."""

    actor_id: str
    action: str
    resource_type: str
    resource_id: Optional[str]
    effect: str
    reason: str
    severity: AuditSeverity
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


AuditSink = Callable[[AuditEntry], None]


def logging_sink(entry: AuditEntry) -> None:
    """Default sink: the ``storeauth.audit`` logger."""
    audit_logger.log(
        _LOG_LEVEL[entry.severity],
        f"{entry.effect.upper()} {entry.action} on {entry.resource_type}"
        f"/{entry.resource_id} by {entry.actor_id} reason={entry.reason}",
    )


class DecisionAuditor:
    """Fans audit entries out to the configured sinks."""

    def __init__(self, sinks: Optional[List[AuditSink]] = None, audit_allows: bool = False):
        self.sinks: List[AuditSink] = list(sinks) if sinks is not None else [logging_sink]
        self.audit_allows = audit_allows

    def add_sink(self, sink: AuditSink) -> None:
        self.sinks.append(sink)

    def record(
        self,
        actor_id: str,
        action: str,
        resource_type: str,
        resource_id: Optional[str],
        decision: Decision,
        **details: Any,
    ) -> Optional[AuditEntry]:
        if decision.allowed and not self.audit_allows:
            return None

        severity = (
            AuditSeverity.INFO if decision.allowed
            else _SEVERITY_BY_REASON.get(decision.reason, AuditSeverity.WARNING)
        )
        entry = AuditEntry(
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            effect=decision.effect.value,
            reason=decision.reason.value,
            severity=severity,
            details={k: v for k, v in details.items() if v is not None},
        )
        for sink in self.sinks:
            try:
                sink(entry)
            except Exception:
                audit_logger.exception(f"Audit sink {sink!r} failed")
        return entry
