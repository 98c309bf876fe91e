"""
Admin API routes for runtime logging and service status
"""
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from traderpro.api.dependencies import get_system_manager
from traderpro.logger import VALID_LEVELS, logger, logger_manager
from traderpro.managers.system_manager.api import SystemManager

router = APIRouter(prefix="/api/admin", tags=["Admin"])


class LogLevelRequest(BaseModel):
    """Request model for changing log level"""
    level: str = Field(..., description="Log level: TRACE, DEBUG, INFO, SUCCESS, WARNING, ERROR, CRITICAL")


class LogLevelResponse(BaseModel):
    """Response model for log level operations"""
    success: bool
    level: str
    available_levels: list[str]
    message: str


@router.post("/log-level", response_model=LogLevelResponse)
async def set_log_level(request: LogLevelRequest):
    """
    Change application log level at runtime

    Raises:
        HTTPException: If invalid log level provided
    """
    try:
        new_level = logger_manager.set_level(request.level)
    except ValueError as e:
        logger.error(f"Invalid log level requested: {request.level}")
        raise HTTPException(status_code=400, detail=str(e))

    logger.success(f"Log level changed to: {new_level} via API")
    return LogLevelResponse(
        success=True,
        level=new_level,
        available_levels=list(VALID_LEVELS),
        message=f"Log level successfully changed to {new_level}",
    )


@router.get("/log-level", response_model=LogLevelResponse)
async def get_log_level():
    current_level = logger_manager.get_level()
    return LogLevelResponse(
        success=True,
        level=current_level,
        available_levels=list(VALID_LEVELS),
        message=f"Current log level is {current_level}",
    )


@router.get("/status")
async def get_system_status(system_manager: SystemManager = Depends(get_system_manager)) -> Dict[str, Any]:
    """Breakers, caches and socket state of the running service"""
    logger.debug("System status queried via API")
    return {
        **system_manager.get_status(),
        "logLevel": logger_manager.get_level(),
        "timestamp": datetime.now().isoformat(),
    }
