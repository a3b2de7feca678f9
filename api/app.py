# api/app.py

"""
Trade Import FastAPI Application Factory
----------------------------------------
Builds the app, wires the trade store into ``app.state.services`` and
registers routes. Structural import failures are turned into JSON errors
here: unknown platform -> 404, anything else file-level -> 422. An unusable
config file (accounts, import settings) is reported as 422 with its message.
"""

import time
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.core.trade_store import TradeStore
from api.routes import router as api_router
from api.routes.export import router as export_router
from api.routes.health import router as health_router
from importer.errors import StructuralError, UnknownPlatformError
from utils.config import ConfigError
from utils.logger import setup_logger
from utils.settings import get_settings

logger = setup_logger(__name__)


async def structural_error_handler(request: Request, exc: StructuralError) -> JSONResponse:
    status = 404 if isinstance(exc, UnknownPlatformError) else 422
    return JSONResponse(status_code=status, content=exc.to_dict())


async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
    logger.error("unusable config", extra={"detail": str(exc)})
    return JSONResponse(status_code=422, content={"error": "ConfigError", "detail": str(exc)})


def create_app(trade_store: Optional[TradeStore] = None) -> FastAPI:
    """
    App factory. Pass ``trade_store`` to inject a store (tests); otherwise one
    is built from ``TRADE_STORE_PATH``.
    """
    settings = get_settings()
    app = FastAPI(title="Trade Import API", version="1.0.0")

    if trade_store is None:
        path = Path(settings.TRADE_STORE_PATH) if settings.TRADE_STORE_PATH else None
        trade_store = TradeStore(path)
    app.state.services = SimpleNamespace(trade_store=trade_store)
    app.state.start_ts = time.time()

    app.add_exception_handler(StructuralError, structural_error_handler)
    app.add_exception_handler(ConfigError, config_error_handler)

    # /health (always first)
    app.include_router(health_router)
    # Platforms, imports, account risk
    app.include_router(api_router)
    # CSV export
    app.include_router(export_router, prefix="/export")

    logger.info("app created", extra={"env": settings.ENV, "store_path": settings.TRADE_STORE_PATH})
    return app


# uvicorn entrypoint
app = create_app()
