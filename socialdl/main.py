import logging
import shutil
import uuid
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from socialdl.api import download, health, info, platform, stream
from socialdl.api.deps import build_services
from socialdl.config.settings import Settings, load_settings
from socialdl.core.errors import MediaError, NotFound
from socialdl.core.logging import log_error, setup_logging
from socialdl.core.state import RuntimeState
from socialdl.i18n import i18n
from socialdl.infra.redis import close_redis, init_redis
from socialdl.models.response import ErrorResponse
from socialdl.services.ytdlp import SubprocessExecutor, first_line
from socialdl.utils.locale import get_locale

logger = logging.getLogger(__name__)


def _error_body(message: str) -> dict:
    return ErrorResponse(error=message).model_dump()


def _translator(request: Request):
    locale = get_locale(request.headers.get("accept-language"), request.app.state.settings.i18n)
    return i18n.translator(locale)


def register_exception_handlers(app: FastAPI) -> None:
    """Every JSON failure leaves as {success: false, error}"""

    @app.exception_handler(MediaError)
    async def media_error_handler(request: Request, exc: MediaError):
        _ = _translator(request)
        return JSONResponse(status_code=exc.status_code, content=_error_body(_(exc.key, **exc.params)))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        _ = _translator(request)
        errors = exc.errors()
        reason = errors[0].get("msg", "invalid") if errors else "invalid"
        return JSONResponse(status_code=400, content=_error_body(_("error.invalid_request", reason=reason)))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return await media_error_handler(request, NotFound())
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log_error(request, f"Unhandled error: {exc!r}")
        _ = _translator(request)
        return JSONResponse(status_code=500, content=_error_body(_("error.internal")))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.logging)

    app = FastAPI(
        title=settings.api.title,
        version=settings.api.version,
        docs_url="/docs" if settings.api.debug else None,
        redoc_url=None
    )

    client = httpx.AsyncClient(follow_redirects=True, timeout=30.0)
    app.state.settings = settings
    app.state.runtime = RuntimeState()
    app.state.http_client = client
    app.state.services = build_services(settings, client)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request.state.request_id = uuid.uuid4().hex[:8]

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > settings.api.max_body_bytes:
            return JSONResponse(status_code=413, content=_error_body("Request body too large"))

        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response

    register_exception_handlers(app)

    # Routes
    app.include_router(health.router, tags=["Health"])
    app.include_router(platform.router, tags=["Platform"])
    app.include_router(info.router, tags=["Info"])
    app.include_router(download.router, tags=["Download"])
    app.include_router(stream.router, tags=["Stream"])

    @app.on_event("startup")
    async def startup_event():
        runtime = app.state.runtime
        runtime.redis = await init_redis(settings.redis)
        runtime.ffmpeg_available = shutil.which(settings.ffmpeg.binary) is not None

        try:
            result = await SubprocessExecutor.run(app.state.services.commands.build_version_command(), timeout=10.0)
            if result.returncode == 0:
                runtime.ytdlp_version = first_line(result.stdout) or "unknown"
        except Exception as e:
            logger.warning(f"yt-dlp version check failed: {e}")

        if not runtime.ffmpeg_available:
            logger.warning("ffmpeg not found; mp3 relays will fail")
        logger.info(f"yt-dlp {runtime.ytdlp_version}, listening on port {settings.port}")

    @app.on_event("shutdown")
    async def shutdown_event():
        await client.aclose()
        await close_redis(app.state.runtime.redis)
        app.state.runtime.redis = None

    return app


app = create_app()


def run() -> None:
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
