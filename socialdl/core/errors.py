from typing import Any, List, Optional, Tuple


class MediaError(Exception):
    """
    Base domain error.
    Carries an i18n message key so the route boundary can render it
    in the caller's locale.
    """

    status_code = 500
    key = "error.internal"

    def __init__(self, key: Optional[str] = None, **params: Any):
        self.key = key or self.key
        self.params = params
        super().__init__(self.key)

    def __str__(self) -> str:
        if self.params:
            return f"{self.key} {self.params}"
        return self.key


class InvalidUrl(MediaError):
    status_code = 400
    key = "error.invalid_url"


class BlockedUrl(MediaError):
    """Relay target resolves to a loopback, private or link-local address"""
    status_code = 403
    key = "error.private_ip"


class UnsupportedPlatform(MediaError):
    status_code = 400
    key = "error.unsupported_platform"


class UpstreamUnavailable(MediaError):
    status_code = 502
    key = "error.upstream_unavailable"


class AllMethodsFailed(UpstreamUnavailable):
    key = "error.all_methods_failed"

    def __init__(self, attempts: List[Tuple[str, str]], key: Optional[str] = None, **params: Any):
        self.attempts = attempts
        super().__init__(key, **params)


class TranscodeFailed(MediaError):
    status_code = 500
    key = "error.transcode_failed"


class NotFound(MediaError):
    status_code = 404
    key = "error.not_found"


class ExtractionError(Exception):
    """Raised by a single extraction strategy; never leaves the fallback chain."""
