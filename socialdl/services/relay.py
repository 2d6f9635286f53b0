import asyncio
import logging
from collections import deque
from contextlib import suppress
from typing import AsyncIterator, List, Optional

import httpx

from socialdl.config.settings import FfmpegConfig, Settings
from socialdl.core.errors import MediaError, TranscodeFailed, UpstreamUnavailable
from socialdl.models.internal import OutputFormat
from socialdl.services.ytdlp import YTDLPCommandBuilder
from socialdl.utils.http_client import BrowserClient, UrlGuard
from socialdl.utils.locale import safe_url_for_log

logger = logging.getLogger(__name__)

STDERR_MAX_LINES = 50
MP3_CONTENT_TYPES = ("audio/mpeg", "audio/mp3")


async def _drain_lines(stream: asyncio.StreamReader, lines: deque) -> None:
    """Drain a pipe so the child never blocks on a full buffer"""
    while True:
        line = await stream.readline()
        if not line:
            break
        lines.append(line.decode(errors="ignore").strip())


async def _terminate(process: Optional[asyncio.subprocess.Process]) -> None:
    if process is not None and process.returncode is None:
        with suppress(ProcessLookupError):
            process.kill()
        await process.wait()


async def _cancel(task: Optional[asyncio.Task]) -> None:
    if task is not None and not task.done():
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


class MediaSource:
    """Upstream byte source: start(), then iterate chunks(), always close()"""

    content_type: Optional[str] = None

    async def start(self) -> None:
        raise NotImplementedError

    def chunks(self) -> AsyncIterator[bytes]:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError

    @property
    def is_mp3(self) -> bool:
        return bool(self.content_type) and self.content_type.split(";")[0].strip().lower() in MP3_CONTENT_TYPES


class YtDlpSource(MediaSource):
    """yt-dlp writing the selected format to stdout"""

    def __init__(self, commands: YTDLPCommandBuilder, url: str, format_str: str, chunk_size: int):
        self.cmd = commands.build_stream_command(url, format_str)
        self.url = url
        self.chunk_size = chunk_size
        self.process: Optional[asyncio.subprocess.Process] = None
        self.stderr_lines: deque = deque(maxlen=STDERR_MAX_LINES)
        self.stderr_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL
            )
        except OSError as e:
            logger.error(f"yt-dlp could not be started: {e}")
            raise UpstreamUnavailable("error.stream_failed")
        self.stderr_task = asyncio.create_task(_drain_lines(self.process.stderr, self.stderr_lines))

    async def chunks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.process.stdout.read(self.chunk_size)
            if not chunk:
                break
            yield chunk

        returncode = await self.process.wait()
        if returncode != 0:
            # give the drain task a moment to collect the tail of stderr
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(asyncio.shield(self.stderr_task), timeout=1.0)
            summary = "\n".join(self.stderr_lines)
            logger.warning(f"yt-dlp exited {returncode} for {safe_url_for_log(self.url)}: {summary[:200]}")
            raise UpstreamUnavailable("error.stream_failed")

    async def close(self) -> None:
        await _terminate(self.process)
        await _cancel(self.stderr_task)


class HttpSource(MediaSource):
    """Streamed GET of a direct media URL"""

    def __init__(
        self,
        http: BrowserClient,
        url: str,
        chunk_size: int,
        referer: Optional[str] = None,
        guard: Optional[UrlGuard] = None,
    ):
        self.http = http
        self.url = url
        self.referer = referer
        self.guard = guard
        self.chunk_size = chunk_size
        self.response: Optional[httpx.Response] = None

    async def start(self) -> None:
        try:
            self.response = await self.http.open_stream(self.url, referer=self.referer, guard=self.guard)
        except httpx.HTTPError as e:
            logger.warning(f"Upstream request failed for {safe_url_for_log(self.url)}: {e}")
            raise UpstreamUnavailable("error.stream_failed")

        if self.response.status_code >= 400:
            logger.warning(f"Upstream answered {self.response.status_code} for {safe_url_for_log(self.url)}")
            await self.close()
            raise UpstreamUnavailable("error.stream_failed")

        self.content_type = self.response.headers.get("content-type")

    async def chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_bytes(self.chunk_size):
                yield chunk
        except httpx.HTTPError as e:
            logger.warning(f"Upstream read failed for {safe_url_for_log(self.url)}: {e}")
            raise UpstreamUnavailable("error.stream_failed")

    async def close(self) -> None:
        if self.response is not None:
            await self.response.aclose()


class Mp3Transcode(MediaSource):
    """
    ffmpeg stage: upstream bytes on stdin, MP3 on stdout.
    Upstream failures take precedence over ffmpeg's exit status.
    """

    content_type = "audio/mpeg"

    def __init__(self, config: FfmpegConfig, source: MediaSource, chunk_size: int):
        self.config = config
        self.source = source
        self.chunk_size = chunk_size
        self.process: Optional[asyncio.subprocess.Process] = None
        self.feed_task: Optional[asyncio.Task] = None
        self.feed_error: Optional[MediaError] = None
        self.stderr_lines: deque = deque(maxlen=STDERR_MAX_LINES)
        self.stderr_task: Optional[asyncio.Task] = None

    def build_command(self) -> List[str]:
        return [
            self.config.binary,
            '-hide_banner',
            '-loglevel', 'error',
            '-i', 'pipe:0',
            '-vn',
            '-ac', str(self.config.channels),
            '-ar', str(self.config.sample_rate),
            '-b:a', self.config.audio_bitrate,
            '-f', 'mp3',
            'pipe:1',
        ]

    async def start(self) -> None:
        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.build_command(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            logger.error(f"ffmpeg could not be started: {e}")
            raise TranscodeFailed()
        self.stderr_task = asyncio.create_task(_drain_lines(self.process.stderr, self.stderr_lines))
        self.feed_task = asyncio.create_task(self._feed())

    async def _feed(self) -> None:
        stdin = self.process.stdin
        try:
            async for chunk in self.source.chunks():
                stdin.write(chunk)
                await stdin.drain()
        except MediaError as e:
            self.feed_error = e
        except (BrokenPipeError, ConnectionResetError):
            # ffmpeg gave up; its exit status reports why
            pass
        finally:
            with suppress(BrokenPipeError, ConnectionResetError):
                stdin.close()

    async def chunks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.process.stdout.read(self.chunk_size)
            if not chunk:
                break
            yield chunk

        await self.feed_task
        returncode = await self.process.wait()

        if self.feed_error is not None:
            raise self.feed_error
        if returncode != 0:
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(asyncio.shield(self.stderr_task), timeout=1.0)
            logger.warning(f"ffmpeg exited {returncode}: {' | '.join(self.stderr_lines)[:200]}")
            raise TranscodeFailed()

    async def close(self) -> None:
        await _cancel(self.feed_task)
        await _terminate(self.process)
        await _cancel(self.stderr_task)
        await self.source.close()


class RelayStream:
    """
    A relay whose first chunk has already arrived.
    Anything that fails after this point can only cut the body short.
    """

    def __init__(self, first_chunk: bytes, rest: AsyncIterator[bytes], source: MediaSource, output_format: OutputFormat):
        self.first_chunk = first_chunk
        self.rest = rest
        self.source = source
        self.output_format = output_format
        self._closed = False

    @property
    def media_type(self) -> str:
        return self.output_format.media_type

    async def body(self) -> AsyncIterator[bytes]:
        try:
            yield self.first_chunk
            async for chunk in self.rest:
                yield chunk
        except MediaError as e:
            logger.error(f"Relay terminated after headers were sent: {e}")
        finally:
            await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.source.close()


class StreamRelay:
    """Pipe upstream media to the caller, transcoding to MP3 when asked"""

    def __init__(self, settings: Settings, commands: YTDLPCommandBuilder, http: BrowserClient):
        self.settings = settings
        self.commands = commands
        self.http = http

    def youtube_source(self, url: str, format_str: str) -> MediaSource:
        return YtDlpSource(self.commands, url, format_str, self.settings.download.chunk_size)

    def http_source(self, url: str, referer: Optional[str] = None, guard: Optional[UrlGuard] = None) -> MediaSource:
        return HttpSource(self.http, url, self.settings.download.chunk_size, referer=referer, guard=guard)

    async def open(self, source: MediaSource, output_format: OutputFormat) -> RelayStream:
        """
        Start the pipeline and wait for the first output chunk, so failures
        surface before any response bytes are committed.
        """
        await source.start()

        stage = source
        if output_format is OutputFormat.MP3 and not source.is_mp3:
            stage = Mp3Transcode(self.settings.ffmpeg, source, self.settings.download.chunk_size)
            try:
                await stage.start()
            except MediaError:
                await source.close()
                raise

        iterator = stage.chunks().__aiter__()
        try:
            first_chunk = await iterator.__anext__()
        except StopAsyncIteration:
            await stage.close()
            raise UpstreamUnavailable("error.stream_failed")
        except BaseException:
            await stage.close()
            raise

        return RelayStream(first_chunk, iterator, stage, output_format)
