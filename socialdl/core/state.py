from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis


@dataclass
class RuntimeState:
    """Process-wide runtime facts discovered at startup (held on app.state)"""
    redis: Optional[Redis] = None
    ytdlp_version: str = "unknown"
    ffmpeg_available: bool = False
