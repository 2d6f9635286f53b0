import asyncio
from typing import List, NamedTuple, Optional

from socialdl.config.settings import Settings


class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes


class SubprocessExecutor:
    """Execute subprocess with consistent error handling"""

    @staticmethod
    async def run(
        cmd: List[str],
        timeout: float,
        capture_stderr: bool = True
    ) -> CompletedProcess:
        """
        Run subprocess with timeout and proper cleanup.
        The process is killed on timeout or cancellation.
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE if capture_stderr else asyncio.subprocess.DEVNULL,
            stdin=asyncio.subprocess.DEVNULL
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout
            )

            return CompletedProcess(
                returncode=process.returncode,
                stdout=stdout,
                stderr=stderr if capture_stderr else b""
            )

        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise
        except BaseException:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise


class YTDLPCommandBuilder:
    """Build yt-dlp commands"""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _base(self) -> List[str]:
        cmd = [
            self.settings.ytdlp.binary,
            '--no-playlist',
            '--no-warnings',
            '--socket-timeout', str(self.settings.download.socket_timeout),
            '--retries', str(self.settings.download.retries),
        ]
        if self.settings.ytdlp.js_runtime:
            cmd.extend(['--js-runtimes', self.settings.ytdlp.js_runtime])
        return cmd

    def build_info_command(self, url: str) -> List[str]:
        """Build command for fetching video details as JSON"""
        return self._base() + ['--dump-json', url]

    def build_get_url_command(self, url: str, format_str: str = 'best[ext=mp4]/best') -> List[str]:
        """Build command for resolving direct media URLs (one per line)"""
        return self._base() + ['--get-url', '-f', format_str, url]

    def build_stream_command(self, url: str, format_str: str) -> List[str]:
        """Build command that writes the selected format to stdout"""
        # No --print here: it would mix with the binary output on stdout
        return self._base() + [
            '-f', format_str,
            '-o', '-',
            '--no-progress',
            '--quiet',
            url,
        ]

    def build_version_command(self) -> List[str]:
        return [self.settings.ytdlp.binary, '--version']


def first_line(output: bytes) -> Optional[str]:
    for line in output.decode(errors="ignore").splitlines():
        line = line.strip()
        if line:
            return line
    return None
