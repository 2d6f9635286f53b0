from typing import Callable

from fastapi import APIRouter, Depends, Request

from socialdl.api.deps import get_metadata_service, get_translator
from socialdl.core.errors import InvalidUrl
from socialdl.core.logging import log_info
from socialdl.models.request import UrlRequest
from socialdl.models.response import VideoInfoResponse
from socialdl.services.info import MetadataService
from socialdl.utils.locale import safe_url_for_log

router = APIRouter()


@router.post("/api/video-info", response_model=VideoInfoResponse, response_model_by_alias=True)
async def get_video_info(
    request: Request,
    body: UrlRequest,
    metadata_service: MetadataService = Depends(get_metadata_service),
    _: Callable[..., str] = Depends(get_translator),
):
    """Resolve title, thumbnail, duration and the advertised format catalogue"""
    if not body.url:
        raise InvalidUrl("error.url_required")

    log_info(request, _("log.fetching_info", url=safe_url_for_log(body.url)))

    metadata = await metadata_service.resolve(body.url)
    log_info(request, _("log.info_retrieved", title=metadata.title))

    message = _(metadata.message_key) if metadata.message_key else None
    return VideoInfoResponse.from_metadata(metadata, message=message)
