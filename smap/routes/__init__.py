from .auth import router as auth_router
from .scheduled_posts import router as scheduled_posts_router
from .facebook import router as facebook_router
from .analytics import router as analytics_router
from .connections import router as connections_router
from .ai import router as ai_router
from .health import router as health_router

__all__ = [
    "auth_router",
    "scheduled_posts_router",
    "facebook_router",
    "analytics_router",
    "connections_router",
    "ai_router",
    "health_router",
]
