"""Route handlers for the sandbox backend (F5)."""

from coaching.web.routes.health import router as health_router
from coaching.web.routes.auth import router as auth_router
from coaching.web.routes.onboarding import router as onboarding_router
from coaching.web.routes.diagnostic import router as diagnostic_router

__all__ = [
    "health_router",
    "auth_router",
    "onboarding_router",
    "diagnostic_router",
]
