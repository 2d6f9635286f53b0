from .internal import MediaMetadata, OutputFormat, Platform, ResolvedDownload
from .request import DownloadRequest, UrlRequest
from .response import DownloadResponse, ErrorResponse, PlatformResponse, VideoInfoResponse

__all__ = [
    "DownloadRequest",
    "DownloadResponse",
    "ErrorResponse",
    "MediaMetadata",
    "OutputFormat",
    "Platform",
    "PlatformResponse",
    "ResolvedDownload",
    "UrlRequest",
    "VideoInfoResponse",
]
