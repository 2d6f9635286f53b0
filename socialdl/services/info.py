import logging
from typing import Any, Dict, List

from socialdl.core.errors import UnsupportedPlatform
from socialdl.models.internal import FormatOption, MediaMetadata, Platform
from socialdl.services.instagram import InstagramResolver
from socialdl.services.platform import classify
from socialdl.services.youtube import YouTubeExtractor, representative_thumbnail

logger = logging.getLogger(__name__)

# Advertised catalogues: what the download route can be asked for,
# not what a given upstream video is known to offer.
YOUTUBE_FORMATS: List[FormatOption] = [
    FormatOption(quality="720p", format="mp4", size="15-25 MB"),
    FormatOption(quality="480p", format="mp4", size="8-15 MB"),
    FormatOption(quality="360p", format="mp4", size="5-10 MB"),
    FormatOption(quality="Audio", format="mp3", size="3-8 MB"),
]

INSTAGRAM_FORMATS: List[FormatOption] = [
    FormatOption(quality="HD", format="mp4", size="5-20 MB"),
    FormatOption(quality="Audio", format="mp3", size="1-5 MB"),
]

TIKTOK_FORMATS: List[FormatOption] = [
    FormatOption(quality="HD", format="mp4", size="2-10 MB"),
]


def _duration_seconds(details: Dict[str, Any]) -> int:
    try:
        return int(float(details.get("duration") or 0))
    except (TypeError, ValueError):
        return 0


class MetadataService:
    """Resolve a normalized metadata record for a page URL"""

    def __init__(self, youtube: YouTubeExtractor, instagram: InstagramResolver):
        self.youtube = youtube
        self.instagram = instagram

    async def resolve(self, url: str) -> MediaMetadata:
        platform = classify(url)

        if platform is Platform.YOUTUBE:
            return await self._youtube(url)
        if platform is Platform.INSTAGRAM:
            return await self._instagram(url)
        if platform is Platform.TIKTOK:
            return self._tiktok(url)

        raise UnsupportedPlatform()

    async def _youtube(self, url: str) -> MediaMetadata:
        canonical = self.youtube.canonical_url(url)
        details = await self.youtube.fetch_details(canonical)

        return MediaMetadata(
            platform=Platform.YOUTUBE,
            title=details["title"],
            thumbnail=representative_thumbnail(details),
            duration=_duration_seconds(details),
            author=details.get("uploader") or details.get("channel") or "Unknown",
            formats=list(YOUTUBE_FORMATS),
            video_url=canonical,
        )

    async def _instagram(self, url: str) -> MediaMetadata:
        media_url = await self.instagram.resolve(url)

        return MediaMetadata(
            platform=Platform.INSTAGRAM,
            title="Instagram Video",
            formats=list(INSTAGRAM_FORMATS),
            video_url=media_url,
            message_key="response.instagram_detected",
        )

    def _tiktok(self, url: str) -> MediaMetadata:
        # Placeholder only: no extraction is attempted for TikTok.
        return MediaMetadata(
            platform=Platform.TIKTOK,
            title="TikTok Video",
            formats=list(TIKTOK_FORMATS),
            video_url=url,
            message_key="response.tiktok_limited",
        )
