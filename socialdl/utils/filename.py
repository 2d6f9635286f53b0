import re
import time
from typing import Optional

MAX_FILENAME_LENGTH = 120

_NON_ALNUM = re.compile(r'[^A-Za-z0-9]+')


def sanitize_title(title: str, max_length: int = 80) -> str:
    """Collapse anything that is not ASCII alphanumeric into single underscores"""
    stem = _NON_ALNUM.sub('_', title or '').strip('_')
    return stem[:max_length].rstrip('_') or 'video'


def build_download_filename(
    title: str,
    ext: str,
    timestamp_ms: Optional[int] = None,
    max_length: int = MAX_FILENAME_LENGTH,
) -> str:
    """
    Build "<title>_<millis>.<ext>".
    Names are unique only to millisecond granularity.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)

    suffix = f"_{timestamp_ms}.{ext}"
    stem = sanitize_title(title, max_length=max(1, max_length - len(suffix)))
    return f"{stem}{suffix}"


def safe_attachment_name(name: Optional[str], fallback: str, max_length: int = MAX_FILENAME_LENGTH) -> str:
    """Caller-supplied attachment names keep only [A-Za-z0-9._-]"""
    if not name:
        return fallback
    cleaned = re.sub(r'[^A-Za-z0-9._-]', '_', name).lstrip('.')
    return cleaned[:max_length] or fallback
