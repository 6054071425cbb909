from __future__ import annotations

import time
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles

from wallpaper.api.metrics import router as metrics_router
from wallpaper.api.public.healthz import router as healthz_router
from wallpaper.api.public.random_image import router as random_image_router
from wallpaper.api.public.version import router as version_router
from wallpaper.core.catalog import ImageCatalog
from wallpaper.core.config import HARD_MAX_COUNT, Settings, load_settings
from wallpaper.core.errors import ApiError, ErrorCode, error_response
from wallpaper.core.image_urls import CONVERTED_PREFIX, ORIGINALS_PREFIX
from wallpaper.core.logging import configure_logging, get_logger
from wallpaper.core.metrics import api_result_from_status, observe_api_result
from wallpaper.core.request_id import build_request_id_middleware, get_or_create_request_id, set_request_id_header
from wallpaper.core.sampler import RecentHistory, Sampler, build_random_source

log = get_logger(__name__)

API_PATHS = frozenset({"/", "/api", "/api/"})


def _mount_static(app: FastAPI, settings: Settings) -> None:
    if not settings.static_root:
        return
    root = Path(settings.static_root)
    for prefix in (ORIGINALS_PREFIX, CONVERTED_PREFIX):
        folder = root / prefix
        if folder.is_dir():
            app.mount(f"/{prefix}", StaticFiles(directory=str(folder)), name=prefix)
            log.info("static_mounted prefix=/%s dir=%s", prefix, str(folder))
        else:
            log.warning("static_dir_missing prefix=/%s dir=%s", prefix, str(folder))


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="random-wallpaper-api", docs_url="/api/docs", redoc_url="/api/redoc")

    @app.exception_handler(ApiError)
    async def _api_error_handler(request: Request, exc: ApiError):  # type: ignore[no-redef]
        return error_response(
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            request=request,
            details=exc.details,
        )

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):  # type: ignore[no-redef]
        log.exception("unhandled_exception path=%s", request.url.path)
        rid = get_or_create_request_id(request)
        resp = error_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            message="Internal Server Error",
            error=str(exc) or type(exc).__name__,
            request=request,
            request_id=rid,
        )
        # Served outside the request id middleware.
        set_request_id_header(resp, rid)
        return resp

    app.add_middleware(build_request_id_middleware())

    @app.middleware("http")
    async def _metrics_middleware(request: Request, call_next):  # type: ignore[no-redef]
        if request.url.path not in API_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        started = time.monotonic()
        response = None
        try:
            response = await call_next(request)
            return response
        finally:
            status_code = int(getattr(response, "status_code", 0) or 500)
            result = api_result_from_status(status_code)
            if status_code == 200 and "type" not in request.query_params and request.method == "GET":
                result = "help"
            observe_api_result(result=result, duration_s=time.monotonic() - started)

    app.state.settings = settings
    app.state.catalog = ImageCatalog.from_settings(settings)
    app.state.sampler = Sampler(
        build_random_source(settings.random_seed),
        history=RecentHistory(capacity=settings.history_size) if settings.history_size > 0 else None,
        hard_cap=HARD_MAX_COUNT,
    )

    @app.on_event("startup")
    async def _warm_catalog() -> None:  # type: ignore[no-redef]
        try:
            await app.state.catalog.get()
        except Exception as exc:
            log.warning("image_catalog_warmup_failed err=%s", type(exc).__name__)

    app.include_router(healthz_router)
    app.include_router(random_image_router)
    app.include_router(version_router)
    if settings.metrics_enabled:
        app.include_router(metrics_router)

    _mount_static(app, settings)

    return app


app = create_app()
