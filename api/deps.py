"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from fastapi import Request

from services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """
    Service container built at startup

    Usage:
        @router.get("/")
        async def endpoint(container: ServiceContainer = Depends(get_container)):
            ...
    """
    return request.app.state.container
