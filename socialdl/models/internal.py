from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class Platform(str, Enum):
    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Platform":
        """Map a caller-supplied tag to a platform; anything unrecognised is UNKNOWN"""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


class OutputFormat(str, Enum):
    MP4 = "mp4"
    MP3 = "mp3"

    @property
    def media_type(self) -> str:
        return "audio/mpeg" if self is OutputFormat.MP3 else "video/mp4"


class FormatOption(BaseModel):
    """An advertised quality/container pair (not verified against the upstream)"""
    quality: str
    format: str
    size: str


class MediaMetadata(BaseModel):
    """Normalized description of one piece of media"""
    platform: Platform
    title: str
    thumbnail: str = ""
    duration: int = 0
    author: Optional[str] = None
    formats: List[FormatOption] = []
    video_url: Optional[str] = None
    message_key: Optional[str] = None


class ResolvedDownload(BaseModel):
    """Where the caller can fetch the requested media from"""
    direct_url: str
    filename: str
    container: OutputFormat
    quality: str
    is_direct_file: bool
    title: str
    message_key: Optional[str] = None
