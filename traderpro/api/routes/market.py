"""
Market API Routes
Historical candle windows, industry posture and rotation sparklines
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from traderpro.api.dependencies import get_system_manager
from traderpro.logger import logger
from traderpro.managers.system_manager.api import SystemManager
from traderpro.models.candles import ErrorResult

router = APIRouter(prefix="/api/market", tags=["Market"])


def _flag(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


@router.get("/candles/window")
async def get_candles_window(
    target: Optional[str] = Query(None),
    symbol: Optional[str] = Query(None),
    watchlist_key: Optional[str] = Query(None, alias="watchlistKey"),
    owner_user_id: Optional[str] = Query(None, alias="ownerUserId"),
    range_: Optional[str] = Query(None, alias="range"),
    res: Optional[str] = Query(None),
    session: Optional[str] = Query(None),
    system_manager: SystemManager = Depends(get_system_manager),
):
    """
    Candles plus provenance for one symbol or a watchlist composite

    Returns:
        ``{ok: true, candles, meta}``; 502 ``{ok: false, error}`` when every source failed
    """
    result = await system_manager.get_data_manager().get_candles_window(
        target=target,
        range_=range_,
        res=res,
        session=session,
        symbol=symbol,
        watchlist_key=watchlist_key,
        owner_user_id=owner_user_id,
    )
    if isinstance(result, ErrorResult):
        logger.warning(f"Candle window failed: {result.code} {result.message}")
        return JSONResponse(status_code=502, content=result.to_dict())
    return result.to_dict()


@router.get("/industry-posture")
async def get_industry_posture(
    owner_user_id: Optional[str] = Query(None, alias="ownerUserId"),
    watchlist_key: Optional[str] = Query(None, alias="watchlistKey"),
    scheduler: Optional[str] = Query(None),
    cache_only: Optional[str] = Query(None, alias="cacheOnly"),
    debug: Optional[str] = Query(None),
    system_manager: SystemManager = Depends(get_system_manager),
):
    return await system_manager.get_analysis_engine().get_industry_posture(
        owner_user_id=owner_user_id,
        watchlist_key=watchlist_key,
        scheduler=_flag(scheduler),
        cache_only=_flag(cache_only),
        debug=_flag(debug),
    )


@router.get("/industry-rotation-sparklines")
async def get_industry_rotation_sparklines(
    industry_code: Optional[str] = Query(None, alias="industryCode"),
    symbols: Optional[str] = Query(None),
    owner_user_id: Optional[str] = Query(None, alias="ownerUserId"),
    system_manager: SystemManager = Depends(get_system_manager),
):
    """
    Daily % change sparklines for one industry's constituents

    Returns:
        Sparkline payload; 503 ``{ok: false, error}`` when daily closes are unavailable
    """
    response = await system_manager.get_analysis_engine().get_industry_rotation_sparklines(
        industry_code=industry_code,
        symbols=symbols,
        owner_user_id=owner_user_id,
    )
    if not response.get("ok"):
        return JSONResponse(status_code=503, content=response)
    return response
