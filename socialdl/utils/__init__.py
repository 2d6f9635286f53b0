from .filename import build_download_filename, safe_attachment_name, sanitize_title
from .hash import hash_stable

__all__ = ["build_download_filename", "hash_stable", "safe_attachment_name", "sanitize_title"]
