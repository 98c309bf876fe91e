"""
Realtime API Routes
Live industry pressure, intraday breadth and the realtime socket adapter
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from traderpro.api.dependencies import get_system_manager
from traderpro.logger import logger
from traderpro.managers.system_manager.api import SystemManager

router = APIRouter(prefix="/api/realtime", tags=["Realtime"])


class IndustrySymbols(BaseModel):
    """One industry and its constituents"""
    industryCode: str = ""
    symbols: List[str] = Field(default_factory=list)


class IndustryPressureRequest(BaseModel):
    """Request model for live industry pressure"""
    res: str = Field(default="5m", description="5m or 15m")
    industries: List[IndustrySymbols] = Field(default_factory=list)


class TrackedSymbolsRequest(BaseModel):
    """Request model for replacing the tracked symbol set"""
    symbols: List[str] = Field(default_factory=list)


@router.post("/industry-pressure")
async def post_industry_pressure(
    request: IndustryPressureRequest,
    system_manager: SystemManager = Depends(get_system_manager),
) -> Dict[str, Any]:
    return await system_manager.get_analysis_engine().get_industry_pressure(
        [item.model_dump() for item in request.industries],
        res=request.res,
    )


@router.get("/industry-intraday")
async def get_industry_intraday(
    symbols: str = Query("", description="Comma-separated symbols"),
    system_manager: SystemManager = Depends(get_system_manager),
) -> Dict[str, Any]:
    return await system_manager.get_analysis_engine().get_industry_intraday(symbols)


@router.get("/state")
async def get_realtime_state(system_manager: SystemManager = Depends(get_system_manager)) -> Dict[str, Any]:
    """Adapter snapshot, payloads exactly as the realtime server sent them"""
    return {"ok": True, "state": system_manager.get_realtime_adapter().snapshot()}


@router.put("/tracked-symbols")
async def put_tracked_symbols(
    request: TrackedSymbolsRequest,
    system_manager: SystemManager = Depends(get_system_manager),
) -> Dict[str, Any]:
    adapter = system_manager.get_realtime_adapter()
    delta = await adapter.set_tracked_symbols(request.symbols)
    logger.info(f"Tracked symbols: +{len(delta['subscribe'])} -{len(delta['unsubscribe'])}")
    return {"ok": True, "trackedSymbols": adapter.tracked_symbols, **delta}
