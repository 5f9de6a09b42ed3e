"""Decision deadlines. An exceeded deadline fails closed."""

import time
from typing import Optional

from storeauth.core.errors import DeadlineExceeded


class Deadline:
    """Monotonic-clock deadline checked between fact lookups."""

    def __init__(self, timeout_seconds: Optional[float]):
        self.timeout_seconds = timeout_seconds
        self._expires_at = (
            None if timeout_seconds is None else time.monotonic() + timeout_seconds
        )

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self, stage: str = "") -> None:
        if self.expired:
            raise DeadlineExceeded(
                f"Decision deadline of {self.timeout_seconds}s exceeded"
                + (f" during {stage}" if stage else "")
            )
