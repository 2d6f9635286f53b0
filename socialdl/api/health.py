from datetime import datetime, timezone
from typing import Callable

from fastapi import APIRouter, Depends, Request

from socialdl.api.deps import get_settings, get_translator
from socialdl.config.settings import Settings

router = APIRouter()


@router.get("/")
async def root(settings: Settings = Depends(get_settings), _: Callable[..., str] = Depends(get_translator)):
    """Service banner"""
    return {
        "message": _("response.banner"),
        "status": _("response.status_ok"),
        "service": settings.api.title,
        "version": settings.api.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/api/health")
@router.get("/api/test")
async def health_check(request: Request, _: Callable[..., str] = Depends(get_translator)):
    """Lightweight health check"""
    runtime = request.app.state.runtime

    redis_status = _("response.redis_disabled")
    if runtime.redis:
        try:
            await runtime.redis.ping()
            redis_status = _("response.redis_connected")
        except Exception:
            redis_status = _("response.redis_disconnected")

    return {
        "success": True,
        "status": _("response.status_ok"),
        "message": _("response.backend_ok"),
        "ytdlp_version": runtime.ytdlp_version,
        "ffmpeg_available": runtime.ffmpeg_available,
        "redis": redis_status,
    }
