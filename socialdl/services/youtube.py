import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from socialdl.config.settings import Settings
from socialdl.core.errors import InvalidUrl, UpstreamUnavailable
from socialdl.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder
from socialdl.utils.locale import safe_url_for_log

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

YOUTUBE_HOSTS = {
    "youtube.com",
    "www.youtube.com",
    "m.youtube.com",
    "music.youtube.com",
    "gaming.youtube.com",
}
SHORT_HOSTS = {"youtu.be", "www.youtu.be"}
PATH_PREFIXES = ("shorts", "embed", "live", "v")

VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")


def _parse(url: str):
    if "://" not in url:
        url = f"https://{url}"
    return urlparse(url)


def extract_video_id(url: str) -> Optional[str]:
    """Return the 11-character video id, or None when the URL is not a YouTube video URL"""
    try:
        parsed = _parse(url.strip())
    except ValueError:
        return None

    host = (parsed.hostname or "").lower()
    segments = [s for s in parsed.path.split("/") if s]

    candidate = None
    if host in SHORT_HOSTS:
        candidate = segments[0] if segments else None
    elif host in YOUTUBE_HOSTS:
        if segments and segments[0] == "watch":
            candidate = (parse_qs(parsed.query).get("v") or [None])[0]
        elif len(segments) >= 2 and segments[0] in PATH_PREFIXES:
            candidate = segments[1]

    if candidate and VIDEO_ID_RE.match(candidate):
        return candidate
    return None


def normalize_youtube_url(url: str) -> str:
    """Rewrite short/shorts/embed forms to the canonical watch URL; leave anything else alone"""
    video_id = extract_video_id(url)
    if video_id is None:
        return url
    return WATCH_URL.format(video_id=video_id)


def is_valid_youtube_url(url: str) -> bool:
    return extract_video_id(url) is not None


def representative_thumbnail(details: Dict[str, Any]) -> str:
    if details.get("thumbnail"):
        return details["thumbnail"]
    thumbnails = details.get("thumbnails") or []
    for thumb in reversed(thumbnails):
        if thumb.get("url"):
            return thumb["url"]
    return ""


def _is_audio_only(f: Dict[str, Any]) -> bool:
    return f.get("vcodec") == "none" and f.get("acodec") not in (None, "none")


def _is_progressive(f: Dict[str, Any]) -> bool:
    return f.get("vcodec") not in (None, "none") and f.get("acodec") not in (None, "none")


def select_audio_format(formats: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Best audio-only stream by bitrate"""
    audio = [f for f in formats if _is_audio_only(f)]
    if not audio:
        return None
    return max(audio, key=lambda f: (f.get("abr") or 0, f.get("tbr") or 0))


def select_video_format(formats: List[Dict[str, Any]], preferred_id: str) -> Optional[Dict[str, Any]]:
    """
    Fixed compatibility profile first (progressive H.264/AAC mp4),
    then the highest progressive stream.
    """
    for f in formats:
        if str(f.get("format_id")) == preferred_id:
            return f
    progressive = [f for f in formats if _is_progressive(f)]
    if not progressive:
        return None
    return max(progressive, key=lambda f: (f.get("height") or 0, f.get("tbr") or 0))


def describe_format(f: Dict[str, Any]) -> str:
    if _is_audio_only(f):
        abr = f.get("abr") or f.get("tbr")
        return f"{int(abr)}kbps" if abr else "audio"
    if f.get("height"):
        return f"{f['height']}p"
    return f.get("format_note") or str(f.get("format_id"))


class YouTubeExtractor:
    """yt-dlp backed YouTube lookups"""

    def __init__(self, settings: Settings, commands: YTDLPCommandBuilder):
        self.settings = settings
        self.commands = commands

    def canonical_url(self, url: str) -> str:
        canonical = normalize_youtube_url(url)
        if not is_valid_youtube_url(canonical):
            raise InvalidUrl("error.invalid_youtube_url")
        return canonical

    async def fetch_details(self, url: str) -> Dict[str, Any]:
        """Fetch video details; every failure surfaces as UpstreamUnavailable"""
        cmd = self.commands.build_info_command(url)
        safe_url = safe_url_for_log(url)

        try:
            result = await SubprocessExecutor.run(cmd, timeout=self.settings.download.metadata_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"yt-dlp timed out for {safe_url}")
            raise UpstreamUnavailable("error.timeout")
        except OSError as e:
            logger.error(f"yt-dlp could not be started: {e}")
            raise UpstreamUnavailable()

        if result.returncode != 0:
            reason = result.stderr.decode(errors="ignore").strip()
            logger.warning(f"yt-dlp failed for {safe_url}: {reason[:200]}")
            raise UpstreamUnavailable(self._classify_failure(reason))

        try:
            details = json.loads(result.stdout.decode(errors="ignore"))
        except json.JSONDecodeError:
            raise UpstreamUnavailable()

        if not details.get("title"):
            raise UpstreamUnavailable("error.youtube_unavailable")
        return details

    @staticmethod
    def _classify_failure(reason: str) -> str:
        lowered = reason.lower()
        if "private" in lowered:
            return "error.youtube_private"
        if "unavailable" in lowered or "410" in lowered or "removed" in lowered:
            return "error.youtube_unavailable"
        if "timed out" in lowered or "timeout" in lowered:
            return "error.timeout"
        return "error.upstream_unavailable"
