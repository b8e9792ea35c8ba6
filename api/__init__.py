"""
API Module
FastAPI routers for the MedCommand application
"""

from api.commands import router as commands_router
from api.events import router as events_router
from api.views import router as views_router
from api.adherence import router as adherence_router
from api.archive import router as archive_router

from api.deps import get_container


__all__ = [
    # Routers
    "commands_router",
    "events_router",
    "views_router",
    "adherence_router",
    "archive_router",
    # Dependencies
    "get_container",
]


def include_routers(app):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    from config import settings

    app.include_router(commands_router, prefix=settings.API_PREFIX)
    app.include_router(events_router, prefix=settings.API_PREFIX)
    app.include_router(views_router, prefix=settings.API_PREFIX)
    app.include_router(adherence_router, prefix=settings.API_PREFIX)
    app.include_router(archive_router, prefix=settings.API_PREFIX)
