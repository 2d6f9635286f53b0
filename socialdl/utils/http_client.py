from typing import Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

import httpx

UA_CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)

UA_SAFARI = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.0 Safari/605.1.15"
)

LANG_US = "en-US,en;q=0.9"
LANG_GB = "en-GB,en;q=0.8"

MAX_REDIRECTS = 5

# Raises to refuse a redirect target
UrlGuard = Callable[[str], Awaitable[None]]


def browser_headers(url: str, accept: str = "*/*") -> Dict[str, str]:
    """Headers that make page and CDN fetches look like a desktop browser"""
    parsed = urlparse(url)
    return {
        "User-Agent": UA_CHROME,
        "Accept": accept,
        "Accept-Language": LANG_US,
        "Accept-Encoding": "identity",
        "Connection": "keep-alive",
        "Referer": f"{parsed.scheme}://{parsed.netloc}/",
    }


class BrowserClient:
    """
    Thin wrapper over a shared httpx.AsyncClient.
    Page fetches are buffered; media fetches are streamed and retried
    with adjusted headers when the CDN answers 403.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def get_page(self, url: str, timeout: Optional[float] = None) -> str:
        headers = browser_headers(url, accept="text/html,application/xhtml+xml,*/*;q=0.8")
        resp = await self.client.get(url, headers=headers, timeout=timeout)
        resp.raise_for_status()
        return resp.text

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ):
        resp = await self.client.get(url, params=params, headers=headers, timeout=timeout)
        resp.raise_for_status()
        return resp.json()

    async def open_stream(self, url: str, referer: Optional[str] = None, guard: Optional[UrlGuard] = None) -> httpx.Response:
        """
        Open a streamed GET. Returns the first non-403 response, or the
        last 403 once every header variation has been tried.
        Redirects are followed by hand so guard can vet each hop.
        The caller owns the response and must close it.
        """
        headers = browser_headers(url)

        resp = await self._send(url, headers, guard)
        if resp.status_code != 403:
            return resp

        variations = []
        if referer:
            variations.append({"Referer": referer})
        variations.append({"Accept-Language": LANG_GB})
        variations.append({
            "Sec-Fetch-Site": "same-origin",
            "Sec-Fetch-Mode": "no-cors",
            "Sec-Fetch-Dest": "video",
        })
        variations.append({"Range": "bytes=0-"})
        variations.append({"User-Agent": UA_SAFARI})

        for change in variations:
            await resp.aclose()
            headers.update(change)
            resp = await self._send(url, headers, guard)
            if resp.status_code != 403:
                return resp

        return resp

    async def _send(self, url: str, headers: Dict[str, str], guard: Optional[UrlGuard] = None) -> httpx.Response:
        for _ in range(MAX_REDIRECTS + 1):
            req = self.client.build_request("GET", url, headers=headers)
            resp = await self.client.send(req, stream=True, follow_redirects=False)
            if not resp.is_redirect:
                return resp

            url = str(resp.url.join(resp.headers["location"]))
            await resp.aclose()
            if guard is not None:
                await guard(url)

        raise httpx.TooManyRedirects(f"More than {MAX_REDIRECTS} redirects", request=req)
