"""API routers for the heritage workflow."""

from . import artifacts
from . import audit
from . import authorize
from . import health
from . import museums
from . import rentals
from . import users

__all__ = [
    "artifacts",
    "audit",
    "authorize",
    "health",
    "museums",
    "rentals",
    "users",
]
