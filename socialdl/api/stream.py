import re
import time
from typing import Callable, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse, StreamingResponse

from socialdl.api.deps import (
    get_instagram_resolver,
    get_security_validator,
    get_settings,
    get_stream_relay,
    get_translator,
)
from socialdl.config.settings import Settings
from socialdl.core.errors import InvalidUrl, MediaError, UnsupportedPlatform
from socialdl.core.logging import log_error, log_info, log_warning
from socialdl.core.security import SecurityValidator
from socialdl.infra.concurrency import concurrency_limiter, release_relay_slot
from socialdl.infra.rate_limit import rate_limiter
from socialdl.models.internal import OutputFormat, Platform
from socialdl.services.instagram import InstagramResolver, is_instagram_page
from socialdl.services.platform import classify
from socialdl.services.relay import MediaSource, StreamRelay
from socialdl.services.youtube import is_valid_youtube_url, normalize_youtube_url
from socialdl.utils.filename import safe_attachment_name
from socialdl.utils.locale import safe_url_for_log

router = APIRouter()

FORMAT_SELECTOR_RE = re.compile(r"^[A-Za-z0-9_\-+/\[\]<>=.*]{1,100}$")
INSTAGRAM_REFERER = "https://www.instagram.com/"

STREAM_DEPENDENCIES = [Depends(rate_limiter)]


async def _build_source(
    url: str,
    output_format: OutputFormat,
    itag: Optional[str],
    settings: Settings,
    relay: StreamRelay,
    instagram: InstagramResolver,
    validator: SecurityValidator,
) -> MediaSource:
    platform = classify(url)

    if platform is Platform.YOUTUBE:
        canonical = normalize_youtube_url(url)
        if not is_valid_youtube_url(canonical):
            raise InvalidUrl("error.invalid_youtube_url")
        if itag and not FORMAT_SELECTOR_RE.match(itag):
            raise InvalidUrl()
        if not itag:
            if output_format is OutputFormat.MP3:
                itag = "bestaudio/best"
            else:
                itag = f"{settings.download.youtube_video_itag}/best[ext=mp4]/best"
        return relay.youtube_source(canonical, itag)

    if platform is Platform.TIKTOK:
        raise UnsupportedPlatform("error.unsupported_download", platform=platform.value)

    referer = None
    media_url = url
    if platform is Platform.INSTAGRAM and is_instagram_page(url):
        media_url = await instagram.resolve(url)
        referer = INSTAGRAM_REFERER

    # Anything else is a direct media URL fetched on the caller's behalf;
    # every redirect hop is checked against the same rules
    await validator.ensure_allowed(media_url)
    return relay.http_source(media_url, referer=referer, guard=validator.ensure_allowed)


async def _relay(
    request: Request,
    url: Optional[str],
    output_format: OutputFormat,
    itag: Optional[str],
    filename: Optional[str],
    settings: Settings,
    relay: StreamRelay,
    instagram: InstagramResolver,
    validator: SecurityValidator,
    _: Callable[..., str],
):
    # Taken only once the query has validated; released on every exit below
    await concurrency_limiter(request)

    try:
        if not url:
            raise InvalidUrl("error.url_required")

        log_info(request, _("log.starting_stream", format=output_format.value, url=safe_url_for_log(url)))
        source = await _build_source(url, output_format, itag, settings, relay, instagram, validator)
        stream = await relay.open(source, output_format)

    except MediaError as e:
        await release_relay_slot(request)
        # Relay failures are reported as 500; client mistakes keep their 4xx
        if e.status_code < 500:
            log_warning(request, f"Stream rejected: {e}")
            status_code = e.status_code
        else:
            log_error(request, f"Stream failed before commit: {e}")
            status_code = 500
        return PlainTextResponse(_(e.key, **e.params), status_code=status_code)
    except BaseException:
        await release_relay_slot(request)
        raise

    fallback_name = f"{classify(url).value}_{int(time.time() * 1000)}.{output_format.value}"
    attachment = safe_attachment_name(filename, fallback_name)

    async def body():
        try:
            async for chunk in stream.body():
                yield chunk
        finally:
            await stream.close()
            await release_relay_slot(request)

    headers = {
        "Content-Disposition": f"attachment; filename*=UTF-8''{quote(attachment)}",
        "X-Content-Type-Options": "nosniff",
        "Cache-Control": "no-cache",
    }
    return StreamingResponse(body(), media_type=stream.media_type, headers=headers)


@router.get("/api/stream", dependencies=STREAM_DEPENDENCIES)
@router.get("/api/stream-youtube", dependencies=STREAM_DEPENDENCIES)
@router.get("/api/stream-instagram", dependencies=STREAM_DEPENDENCIES)
async def stream_media(
    request: Request,
    url: Optional[str] = Query(None, description="Page URL or direct media URL"),
    format: OutputFormat = Query(OutputFormat.MP4, description="mp4 or mp3"),
    itag: Optional[str] = Query(None, description="yt-dlp format id / selector (YouTube only)"),
    filename: Optional[str] = Query(None, description="Attachment filename"),
    settings: Settings = Depends(get_settings),
    relay: StreamRelay = Depends(get_stream_relay),
    instagram: InstagramResolver = Depends(get_instagram_resolver),
    validator: SecurityValidator = Depends(get_security_validator),
    _: Callable[..., str] = Depends(get_translator),
):
    """Relay media bytes, transcoding to MP3 when format=mp3"""
    return await _relay(request, url, format, itag, filename, settings, relay, instagram, validator, _)


@router.get("/api/stream-video", dependencies=STREAM_DEPENDENCIES)
async def stream_video(
    request: Request,
    url: Optional[str] = Query(None),
    itag: Optional[str] = Query(None),
    filename: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
    relay: StreamRelay = Depends(get_stream_relay),
    instagram: InstagramResolver = Depends(get_instagram_resolver),
    validator: SecurityValidator = Depends(get_security_validator),
    _: Callable[..., str] = Depends(get_translator),
):
    return await _relay(request, url, OutputFormat.MP4, itag, filename, settings, relay, instagram, validator, _)


@router.get("/api/stream-audio", dependencies=STREAM_DEPENDENCIES)
@router.get("/api/stream-instagram-audio", dependencies=STREAM_DEPENDENCIES)
async def stream_audio(
    request: Request,
    url: Optional[str] = Query(None),
    itag: Optional[str] = Query(None),
    filename: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
    relay: StreamRelay = Depends(get_stream_relay),
    instagram: InstagramResolver = Depends(get_instagram_resolver),
    validator: SecurityValidator = Depends(get_security_validator),
    _: Callable[..., str] = Depends(get_translator),
):
    return await _relay(request, url, OutputFormat.MP3, itag, filename, settings, relay, instagram, validator, _)
