from typing import Callable

from fastapi import APIRouter, Depends, Request

from socialdl.api.deps import get_download_service, get_translator
from socialdl.core.errors import InvalidUrl
from socialdl.core.logging import log_info
from socialdl.infra.rate_limit import rate_limiter
from socialdl.models.request import DownloadRequest
from socialdl.models.response import DownloadResponse
from socialdl.services.download import DownloadService
from socialdl.utils.locale import safe_url_for_log

router = APIRouter()


@router.post(
    "/api/download",
    response_model=DownloadResponse,
    response_model_by_alias=True,
    dependencies=[Depends(rate_limiter)],
)
async def download_video(
    request: Request,
    body: DownloadRequest,
    download_service: DownloadService = Depends(get_download_service),
    _: Callable[..., str] = Depends(get_translator),
):
    """Resolve a download link (direct media URL or stream relay reference)"""
    if not body.url:
        raise InvalidUrl("error.url_required")

    log_info(request, _(
        "log.resolving_download",
        platform=body.platform or "auto",
        format=body.format.value,
        url=safe_url_for_log(body.url),
    ))

    resolved = await download_service.resolve(body.url, body.platform, body.format, body.quality)

    message = _(resolved.message_key) if resolved.message_key else None
    return DownloadResponse.from_resolved(resolved, message=message)
