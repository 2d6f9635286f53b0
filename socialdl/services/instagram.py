import asyncio
import html
import logging
import re
from typing import List, Optional, Pattern, Sequence, Tuple
from urllib.parse import urlparse

import httpx

from socialdl.config.settings import Settings
from socialdl.core.errors import AllMethodsFailed, ExtractionError
from socialdl.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder, first_line
from socialdl.utils.http_client import BrowserClient
from socialdl.utils.locale import safe_url_for_log

logger = logging.getLogger(__name__)

INSTAGRAM_PAGE_HOSTS = {"instagram.com", "www.instagram.com", "m.instagram.com"}

DEFAULT_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r'"video_url"\s*:\s*"([^"]+)"'),
    re.compile(r'"contentUrl"\s*:\s*"([^"]+)"'),
    re.compile(
        r'<meta[^>]+property=["\']og:video(?::secure_url|:url)?["\'][^>]*content=["\']([^"\']+)["\']',
        re.IGNORECASE,
    ),
    re.compile(r'<video[^>]+src=["\']([^"\']+)["\']', re.IGNORECASE),
)


def is_instagram_page(url: str) -> bool:
    """True for instagram.com pages; CDN hosts such as cdninstagram.com are media, not pages"""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return False
    return host in INSTAGRAM_PAGE_HOSTS


def unescape_media_url(raw: str) -> str:
    return html.unescape(raw.replace("\\u0026", "&").replace("\\/", "/"))


class PageScraper:
    """
    Best-effort regex extraction of a video URL from page HTML.
    Patterns are tried in order; the first match wins.
    """

    def __init__(self, patterns: Sequence[Pattern] = DEFAULT_PATTERNS):
        self.patterns = list(patterns)

    def extract_video_url(self, page: str) -> Optional[str]:
        for pattern in self.patterns:
            match = pattern.search(page)
            if match and match.group(1):
                return unescape_media_url(match.group(1))
        return None


class ExtractionStrategy:
    """One way of turning an Instagram page URL into a direct media URL."""

    name = "strategy"

    async def resolve(self, url: str) -> str:
        raise NotImplementedError


class YtDlpStrategy(ExtractionStrategy):
    name = "yt-dlp"

    def __init__(self, settings: Settings, commands: YTDLPCommandBuilder):
        self.settings = settings
        self.commands = commands

    async def resolve(self, url: str) -> str:
        cmd = self.commands.build_get_url_command(url)
        try:
            result = await SubprocessExecutor.run(cmd, timeout=self.settings.download.resolve_timeout)
        except asyncio.TimeoutError:
            raise ExtractionError("yt-dlp timed out")
        except OSError as e:
            raise ExtractionError(f"yt-dlp could not be started: {e}")

        if result.returncode != 0:
            raise ExtractionError(result.stderr.decode(errors="ignore").strip()[:200] or "yt-dlp failed")

        media_url = first_line(result.stdout)
        if not media_url:
            raise ExtractionError("yt-dlp returned no URL")
        return media_url


class LookupApiStrategy(ExtractionStrategy):
    name = "lookup-api"

    def __init__(self, settings: Settings, http: BrowserClient):
        self.config = settings.instagram
        self.http = http

    async def resolve(self, url: str) -> str:
        if not self.config.lookup_api_key:
            raise ExtractionError("lookup API key not configured")

        headers = {
            "X-RapidAPI-Key": self.config.lookup_api_key,
            "X-RapidAPI-Host": self.config.lookup_api_host,
        }
        try:
            data = await self.http.get_json(
                self.config.lookup_api_url,
                params={"url": url},
                headers=headers,
                timeout=self.config.timeout,
            )
        except (httpx.HTTPError, ValueError) as e:
            raise ExtractionError(f"lookup API request failed: {e}")

        media = data.get("media") if isinstance(data, dict) else None
        if isinstance(media, list):
            media = media[0] if media else None
        if not isinstance(media, str) or not media:
            raise ExtractionError("No media found")
        return media


class PageScrapeStrategy(ExtractionStrategy):
    name = "page-scrape"

    def __init__(self, settings: Settings, http: BrowserClient, scraper: Optional[PageScraper] = None):
        self.config = settings.instagram
        self.http = http
        self.scraper = scraper or PageScraper()

    async def resolve(self, url: str) -> str:
        try:
            page = await self.http.get_page(url, timeout=self.config.timeout)
        except httpx.HTTPError as e:
            raise ExtractionError(f"page fetch failed: {e}")

        media_url = self.scraper.extract_video_url(page)
        if not media_url:
            raise ExtractionError("No video URL found in page source")
        return media_url


class InstagramResolver:
    """Ordered fallback chain: the first strategy yielding a URL wins."""

    def __init__(self, strategies: Sequence[ExtractionStrategy]):
        self.strategies = list(strategies)

    @classmethod
    def default(cls, settings: Settings, commands: YTDLPCommandBuilder, http: BrowserClient) -> "InstagramResolver":
        return cls([
            YtDlpStrategy(settings, commands),
            LookupApiStrategy(settings, http),
            PageScrapeStrategy(settings, http),
        ])

    async def resolve(self, url: str) -> str:
        safe_url = safe_url_for_log(url)
        attempts: List[Tuple[str, str]] = []

        for strategy in self.strategies:
            try:
                media_url = await strategy.resolve(url)
            except Exception as e:
                attempts.append((strategy.name, str(e)))
                logger.info(f"Instagram method {strategy.name} failed for {safe_url}: {e}")
                continue

            if media_url:
                logger.info(f"Instagram media resolved by {strategy.name} for {safe_url}")
                return media_url
            attempts.append((strategy.name, "empty result"))

        logger.warning(f"All Instagram methods failed for {safe_url}")
        raise AllMethodsFailed(attempts)
