"""API routers for storeauth."""

from . import decisions
from . import grants
from . import health
from . import roles

__all__ = [
    "decisions",
    "grants",
    "health",
    "roles",
]
