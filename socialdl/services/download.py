import logging
import time
from typing import Optional, Union
from urllib.parse import urlencode

from socialdl.config.settings import Settings
from socialdl.core.errors import UnsupportedPlatform
from socialdl.models.internal import OutputFormat, Platform, ResolvedDownload
from socialdl.services.instagram import InstagramResolver
from socialdl.services.platform import classify
from socialdl.services.youtube import (
    YouTubeExtractor,
    describe_format,
    select_audio_format,
    select_video_format,
)
from socialdl.utils.filename import build_download_filename

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/stream"
STREAM_AUDIO_PATH = "/api/stream-audio"


class DownloadService:
    """
    Turn a page URL into something the caller can fetch.
    Nothing is persisted server side: the result is either the upstream
    media URL itself or a reference to this service's stream relay.
    """

    def __init__(self, settings: Settings, youtube: YouTubeExtractor, instagram: InstagramResolver):
        self.settings = settings
        self.youtube = youtube
        self.instagram = instagram

    async def resolve(
        self,
        url: str,
        platform: Union[Platform, str, None],
        output_format: OutputFormat,
        quality: Optional[str] = None,
    ) -> ResolvedDownload:
        if isinstance(platform, Platform):
            tag = platform
        elif platform:
            tag = Platform.parse(platform)
        else:
            tag = classify(url)

        if tag is Platform.YOUTUBE:
            return await self._youtube(url, output_format, quality)
        if tag is Platform.INSTAGRAM:
            return await self._instagram(url, output_format)
        if tag is Platform.TIKTOK:
            raise UnsupportedPlatform("error.unsupported_download", platform=tag.value)

        raise UnsupportedPlatform()

    def relay_url(self, path: str, **params: str) -> str:
        prefix = self.settings.base_url or ""
        return f"{prefix}{path}?{urlencode(params)}"

    async def _youtube(self, url: str, output_format: OutputFormat, quality: Optional[str]) -> ResolvedDownload:
        canonical = self.youtube.canonical_url(url)
        details = await self.youtube.fetch_details(canonical)
        formats = details.get("formats") or []

        # The caller's quality label is not used for selection; video
        # downloads always target the fixed compatibility profile.
        if output_format is OutputFormat.MP3:
            chosen = select_audio_format(formats)
            selector = chosen["format_id"] if chosen else "bestaudio/best"
            label = describe_format(chosen) if chosen else "Audio"
        else:
            chosen = select_video_format(formats, self.settings.download.youtube_video_itag)
            selector = chosen["format_id"] if chosen else "best"
            label = describe_format(chosen) if chosen else (quality or "best")

        logger.info(f"YouTube download selected format {selector} ({label}) for {details.get('id', canonical)}")
        filename = build_download_filename(details["title"], output_format.value)

        return ResolvedDownload(
            direct_url=self.relay_url(
                STREAM_PATH,
                url=canonical,
                format=output_format.value,
                itag=str(selector),
                filename=filename,
            ),
            filename=filename,
            container=output_format,
            quality=label,
            is_direct_file=False,
            title=details["title"],
            message_key="response.youtube_ready",
        )

    async def _instagram(self, url: str, output_format: OutputFormat) -> ResolvedDownload:
        media_url = await self.instagram.resolve(url)
        filename = f"instagram_{int(time.time() * 1000)}.{output_format.value}"

        if output_format is OutputFormat.MP3:
            # CDN serves video; audio has to go through the transcoding relay
            return ResolvedDownload(
                direct_url=self.relay_url(STREAM_AUDIO_PATH, url=media_url, filename=filename),
                filename=filename,
                container=OutputFormat.MP3,
                quality="Audio",
                is_direct_file=False,
                title="Instagram Video",
                message_key="response.instagram_ready",
            )

        return ResolvedDownload(
            direct_url=media_url,
            filename=filename,
            container=OutputFormat.MP4,
            quality="HD",
            is_direct_file=True,
            title="Instagram Video",
            message_key="response.instagram_ready",
        )
