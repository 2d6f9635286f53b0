from typing import Callable

from fastapi import APIRouter, Depends, Request

from socialdl.api.deps import get_translator
from socialdl.core.errors import InvalidUrl
from socialdl.core.logging import log_debug
from socialdl.models.request import UrlRequest
from socialdl.models.response import PlatformResponse
from socialdl.services.platform import classify

router = APIRouter()


@router.post("/api/detect-platform", response_model=PlatformResponse)
async def detect_platform(request: Request, body: UrlRequest, _: Callable[..., str] = Depends(get_translator)):
    """Classify a URL by platform"""
    if not body.url:
        raise InvalidUrl("error.url_required")

    platform = classify(body.url)
    log_debug(request, f"Detected platform {platform.value}")
    return PlatformResponse(platform=platform)
