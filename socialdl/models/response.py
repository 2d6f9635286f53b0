from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from socialdl.models.internal import FormatOption, MediaMetadata, OutputFormat, Platform, ResolvedDownload


class ErrorResponse(BaseModel):
    """Single failure shape shared by every JSON route"""
    success: bool = False
    error: str


class PlatformResponse(BaseModel):
    success: bool = True
    platform: Platform


class VideoInfoResponse(BaseModel):
    """Video information response"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    platform: Platform
    title: str
    thumbnail: str = ""
    duration: int = 0
    author: Optional[str] = None
    formats: List[FormatOption] = []
    video_url: Optional[str] = Field(None, alias="videoUrl")
    message: Optional[str] = None

    @classmethod
    def from_metadata(cls, metadata: MediaMetadata, message: Optional[str] = None) -> "VideoInfoResponse":
        return cls(
            platform=metadata.platform,
            title=metadata.title,
            thumbnail=metadata.thumbnail,
            duration=metadata.duration,
            author=metadata.author,
            formats=metadata.formats,
            video_url=metadata.video_url,
            message=message,
        )


class DownloadResponse(BaseModel):
    """Resolved download response"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    download_url: str = Field(..., alias="downloadUrl")
    filename: str
    title: str
    container: OutputFormat
    quality: str
    is_direct_file: bool = Field(..., alias="isDirectFile")
    message: Optional[str] = None

    @classmethod
    def from_resolved(cls, resolved: ResolvedDownload, message: Optional[str] = None) -> "DownloadResponse":
        return cls(
            download_url=resolved.direct_url,
            filename=resolved.filename,
            title=resolved.title,
            container=resolved.container,
            quality=resolved.quality,
            is_direct_file=resolved.is_direct_file,
            message=message,
        )
