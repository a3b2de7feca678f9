from __future__ import annotations

from fastapi import APIRouter, Request

from api.core.trade_store import TradeStore
from api.models.imports import ImportPreview, ImportRequest, ImportResult
from importer.errors import UnknownPlatformError
from importer.pipeline import ImportReport, run_import
from utils.logger import log_extra, setup_logger

router = APIRouter(prefix="/imports", tags=["imports"])
logger = setup_logger(__name__)


def _get_store(request: Request) -> TradeStore:
    return request.app.state.services.trade_store


def _run(platform: str, body: ImportRequest) -> ImportReport:
    return run_import(
        platform,
        body.rows,
        user_id=body.user_id,
        account_number=body.account_number,
        mapping=body.mapping,
    )


@router.post("/{platform}/preview", response_model=ImportPreview)
async def preview_import(platform: str, body: ImportRequest):
    """
    Dry run: the trades the file would produce, the rows it would drop and
    any file-level error. Nothing is saved.
    """
    report = _run(platform, body)
    if isinstance(report.error, UnknownPlatformError):
        raise report.error
    return report.to_dict()


@router.post("/{platform}", response_model=ImportResult)
async def commit_import(platform: str, body: ImportRequest, request: Request):
    report = _run(platform, body)
    if report.error is not None:
        # mapped to 404 / 422 by the app-level handler
        raise report.error

    result = _get_store(request).save_trades(report.trades)
    logger.info(
        "import committed",
        extra=log_extra(
            platform=platform,
            user_id=body.user_id,
            added=result.number_of_trades_added,
            error=result.error.value if result.error else None,
        ),
    )
    out = result.to_dict()
    out["dropped"] = [d.to_dict() for d in report.dropped]
    return out
