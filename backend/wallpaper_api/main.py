import uuid
import time
import json
import logging
import threading
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from wallpaper_api.core.auth import has_valid_header, is_asset_path
from wallpaper_api.core.config import settings
from wallpaper_api.core.errors import AssetError
from wallpaper_api.routers import health, images
from wallpaper_api.services.assets import AssetService


def create_app(service: AssetService | None = None, *, auth_secret: str | None = None) -> FastAPI:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    app = FastAPI(title="Wallpaper API", version="1.0.0")

    logger = logging.getLogger("wallpaper_api")

    try:
        logging.getLogger("botocore").setLevel(logging.WARNING)
    except Exception:
        pass

    app.state.asset_service = service or AssetService.from_settings()

    allow_origins = [o.strip() for o in str(settings.cors_allow_origins or "").split(",") if o.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=False,
        allow_methods=["GET", "PUT", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["ETag", "Image-Id", "Favorite", "X-Request-ID"],
    )

    @app.middleware("http")
    async def auth_gate_middleware(request: Request, call_next):
        # Wraps CORS and routing: preflights and unsupported methods on asset paths get 403 first.
        path = request.url.path
        if is_asset_path(path) and not has_valid_header(request, secret=auth_secret):
            logger.warning("unauthorized request method=%s path=%s", request.method, path)
            return PlainTextResponse("Unauthorized", status_code=403)
        return await call_next(request)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        t0 = time.perf_counter()
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = rid
        status_code: int | None = None
        try:
            response = await call_next(request)
            status_code = int(getattr(response, "status_code", 0) or 0)
        except Exception:
            status_code = 500
            raise
        finally:
            try:
                dur_ms = int((time.perf_counter() - t0) * 1000)
                path = getattr(getattr(request, "url", None), "path", "")
                if not path.startswith("/health"):
                    logger.info(
                        json.dumps(
                            {
                                "ts": datetime.now(timezone.utc).isoformat(),
                                "rid": rid,
                                "method": request.method,
                                "path": path,
                                "status": status_code,
                                "duration_ms": dur_ms,
                            },
                            ensure_ascii=False,
                        )
                    )
            except Exception:
                pass
        response.headers["X-Request-ID"] = rid

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if (settings.app_env or "").strip().lower() in {"prod", "production"}:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response

    @app.exception_handler(AssetError)
    async def asset_error_handler(request: Request, exc: AssetError):
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return PlainTextResponse(str(exc.detail or "request failed"), status_code=int(exc.status_code), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        rid = getattr(getattr(request, "state", None), "request_id", None)
        logger.exception("unhandled exception", extra={"rid": rid})
        return PlainTextResponse("Internal Server Error", status_code=500)

    app.include_router(health.router)
    app.include_router(images.router)
    if app.state.asset_service.favorites_enabled:
        app.include_router(images.favorites_router)
    app.include_router(images.fallback_router)

    def _start_orphan_sweep_scheduler() -> None:
        interval_seconds = max(60, int(settings.orphan_sweep_interval_minutes) * 60)

        def _tick() -> None:
            try:
                health.enqueue_orphan_sweep()
            except Exception:
                logger.warning("orphan sweep scheduling failed", exc_info=True)
            finally:
                t = threading.Timer(interval_seconds, _tick)
                t.daemon = True
                t.start()

        t0 = threading.Timer(10, _tick)
        t0.daemon = True
        t0.start()

    @app.on_event("startup")
    async def _startup_tasks() -> None:
        if bool(getattr(settings, "enable_inprocess_scheduler", False)):
            _start_orphan_sweep_scheduler()

    return app

app = create_app()
