from .errors import (
    AllMethodsFailed,
    BlockedUrl,
    ExtractionError,
    InvalidUrl,
    MediaError,
    NotFound,
    TranscodeFailed,
    UnsupportedPlatform,
    UpstreamUnavailable,
)

__all__ = [
    "AllMethodsFailed",
    "BlockedUrl",
    "ExtractionError",
    "InvalidUrl",
    "MediaError",
    "NotFound",
    "TranscodeFailed",
    "UnsupportedPlatform",
    "UpstreamUnavailable",
]
