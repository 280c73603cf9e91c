from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
import logging, time

from config import settings
from api.v1.router import router as v1_router
from onecta import DaikinCloudClient, TokenStore
from services.cache import DeviceDataCache
from services.poller import DevicePoller, DeviceSource
from services.publisher import MetricsPublisher

logger = logging.getLogger("daikin_exporter")
if not logger.handlers:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _utc_now_iso() -> str:
    iso = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    if iso.endswith("+00:00"):
        return iso[:-6] + "Z"
    return iso


def _build_cloud_client() -> DaikinCloudClient:
    return DaikinCloudClient(
        client_id=settings.oidc_client_id,
        client_secret=settings.oidc_client_secret,
        token_store=TokenStore(settings.token_file_path),
        api_base_url=settings.onecta_api_base_url,
        idp_base_url=settings.onecta_idp_base_url,
        timeout=settings.request_timeout,
    )


def create_app(
    *,
    device_source: Optional[DeviceSource] = None,
    publisher: Optional[MetricsPublisher] = None,
    cache: Optional[DeviceDataCache] = None,
) -> FastAPI:
    app = FastAPI(title=settings.app_name, version=settings.app_version)

    cloud_client: Optional[DaikinCloudClient] = None
    if device_source is None:
        cloud_client = _build_cloud_client()
        device_source = cloud_client.get_cloud_device_details

    app.state.cache = cache if cache is not None else DeviceDataCache(settings.cache_file_path)
    app.state.publisher = (
        publisher
        if publisher is not None
        else MetricsPublisher(collect_runtime_metrics=settings.collect_runtime_metrics)
    )
    app.state.poller = DevicePoller(
        cache=app.state.cache,
        publisher=app.state.publisher,
        device_source=device_source,
        update_interval=settings.update_interval,
        shutdown_grace_seconds=settings.shutdown_grace_seconds,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        dur_ms = (time.perf_counter() - start) * 1000.0
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, dur_ms)
        return response

    @app.get("/", tags=["meta"])
    async def root():
        return {"name": settings.app_name, "version": settings.app_version}

    @app.get("/health", tags=["meta"])
    async def health():
        return JSONResponse({"status": "healthy", "timestamp": _utc_now_iso()})

    @app.get("/metrics", tags=["meta"])
    async def metrics():
        body, content_type = app.state.publisher.render()
        return Response(content=body, media_type=content_type)

    app.include_router(v1_router)

    @app.on_event("startup")
    async def _startup():
        if settings.poller_enabled:
            logger.info("Starting Daikin poller (interval %ss)", settings.update_interval)
            await app.state.poller.start()
        else:
            logger.info("Poller disabled (set POLLER_ENABLED=true to enable).")

    @app.on_event("shutdown")
    async def _shutdown():
        await app.state.poller.stop()
        if cloud_client is not None:
            await cloud_client.close()

    return app


def run() -> None:
    import uvicorn

    logger.info("Prometheus exporter listening on http://%s:%s", settings.host, settings.prometheus_port)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.prometheus_port,
        timeout_graceful_shutdown=int(settings.shutdown_grace_seconds) or None,
    )


app = create_app()

if __name__ == "__main__":
    run()
