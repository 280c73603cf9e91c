from fastapi import APIRouter, Request

from config import settings

router = APIRouter(prefix="/api/v1", tags=["v1"])


@router.get("/info")
async def info():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "update_interval": settings.update_interval,
        "cache_file_path": settings.cache_file_path,
        "poller_enabled": settings.poller_enabled,
        "prometheus_port": settings.prometheus_port,
    }


@router.get("/status")
async def status(request: Request):
    cache = request.app.state.cache
    poller = request.app.state.poller
    return {
        "update_interval": poller.update_interval,
        "cache": {"path": str(cache.path), **cache.info().to_payload()},
        "poller": poller.status().to_payload(),
    }
