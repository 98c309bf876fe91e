"""
TraderPro Market Data Service - FastAPI Application
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from traderpro.api.routes import admin, market, realtime
from traderpro.config import settings as default_settings
from traderpro.config.settings import Settings
from traderpro.core.exceptions import BadRequestError, TradingSystemError
from traderpro.logger import logger
from traderpro.managers.system_manager.api import SystemManager


def create_app(
    app_settings: Optional[Settings] = None,
    system_manager: Optional[SystemManager] = None,
) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        app_settings: Configuration (module settings when omitted)
        system_manager: Pre-built service root (tests); built from settings otherwise
    """
    cfg = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan events for startup and shutdown
        """
        logger.info(f"Starting {cfg.APP_NAME} v{cfg.APP_VERSION}")
        logger.info(f"Debug mode: {cfg.DEBUG}")

        manager = system_manager or SystemManager(cfg)
        await manager.start()
        app.state.system_manager = manager
        logger.success("Application startup complete")

        yield

        logger.info("Shutting down application...")
        await manager.stop()
        app.state.system_manager = None
        logger.success("Application shutdown complete")

    app = FastAPI(
        title=cfg.APP_NAME,
        version=cfg.APP_VERSION,
        description="Market data truth layer: candle windows, composites and industry posture",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BadRequestError)
    async def bad_request_handler(request: Request, exc: BadRequestError):
        logger.info(f"Bad request on {request.url.path}: {exc.code} {exc.message}")
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": {"code": exc.code, "message": exc.message}},
        )

    @app.exception_handler(TradingSystemError)
    async def system_error_handler(request: Request, exc: TradingSystemError):
        logger.error(f"Unhandled service error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": {"code": "INTERNAL_ERROR", "message": str(exc)}},
        )

    app.include_router(admin.router)
    app.include_router(market.router)
    app.include_router(realtime.router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "app": cfg.APP_NAME,
            "version": cfg.APP_VERSION,
            "status": "running",
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        manager = getattr(request.app.state, "system_manager", None)
        return {
            "ok": True,
            "status": "healthy",
            "app": cfg.APP_NAME,
            "version": cfg.APP_VERSION,
            "system": manager.get_status() if manager else {"state": "stopped"},
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server at {default_settings.API.host}:{default_settings.API.port}")

    uvicorn.run(
        "traderpro.main:app",
        host=default_settings.API.host,
        port=default_settings.API.port,
        reload=default_settings.DEBUG,
        log_level=default_settings.LOGGER.default_level.lower(),
    )
