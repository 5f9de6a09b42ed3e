"""Last-known-good holders for periodically reloaded snapshots.

A holder validates each snapshot before swapping it in. A snapshot that
fails validation is rejected, the previous value keeps serving, and the
rejection is logged at CRITICAL. Rejections count as checks for the
freshness bound, so a broken source is retried once per window rather
than on every request.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Optional, TypeVar

from storeauth.common.logger import get_logger
from storeauth.core.errors import ConfigurationFault

logger = get_logger("snapshots")

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotHolder(Generic[T]):
    """Holds one validated value built from a raw snapshot."""

    #: Used in log messages
    label = "snapshot"

    def __init__(
        self,
        value: T,
        loader: Optional[Callable[[], Any]] = None,
        *,
        loaded: bool = False,
    ):
        self._lock = threading.Lock()
        self._value = value
        self._loader = loader
        self.loaded_at: Optional[datetime] = _now() if loaded else None
        self.checked_at: Optional[datetime] = self.loaded_at
        self.last_error: Optional[ConfigurationFault] = None
        self.rejected_count = 0

    def build(self, snapshot: Any) -> T:
        """Validate a raw snapshot; raise ConfigurationFault to reject it."""
        raise NotImplementedError

    def describe(self, value: T) -> str:
        return self.label

    @property
    def current(self) -> T:
        return self._value

    def load(self, snapshot: Any) -> bool:
        """Validate and install a snapshot. Returns False if rejected."""
        try:
            value = self.build(snapshot)
        except ConfigurationFault as e:
            with self._lock:
                self.last_error = e
                self.rejected_count += 1
                self.checked_at = _now()
            logger.critical(f"Rejected {self.label}, keeping last-known-good: {e}")
            return False

        with self._lock:
            self._value = value
            self.loaded_at = self.checked_at = _now()
            self.last_error = None
        logger.info(f"Loaded {self.describe(value)}")
        return True

    def refresh(self) -> bool:
        """Reload from the configured loader."""
        if self._loader is None:
            raise RuntimeError(f"{type(self).__name__} has no loader configured")
        return self.load(self._loader())

    def is_stale(self, max_age_seconds: float) -> bool:
        """True when the last load attempt is older than ``max_age_seconds``."""
        if self.checked_at is None:
            return True
        return (_now() - self.checked_at).total_seconds() > max_age_seconds

    def status(self) -> dict:
        return {
            "loaded_at": self.loaded_at.isoformat() if self.loaded_at else None,
            "rejected_snapshots": self.rejected_count,
            "last_error": str(self.last_error) if self.last_error else None,
        }
