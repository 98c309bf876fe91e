"""
FastAPI dependencies
"""
from fastapi import HTTPException, Request, status

from traderpro.core.enums import SystemState
from traderpro.managers.system_manager.api import SystemManager


def get_system_manager(request: Request) -> SystemManager:
    """
    Service root built by the application lifespan

    Raises:
        HTTPException: 503 if the service root is not running
    """
    system_manager = getattr(request.app.state, "system_manager", None)
    if system_manager is None or system_manager.state != SystemState.RUNNING:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Market data service is not running",
        )
    return system_manager
