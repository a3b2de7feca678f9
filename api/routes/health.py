import time

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_root(request: Request):
    started = getattr(request.app.state, "start_ts", None)
    return {
        "status": "ok",
        "version": request.app.version,
        "uptime_sec": time.time() - started if started else None,
    }
