import hashlib


def hash_stable(data: str, length: int = 16) -> str:
    """Create stable short hash using SHA256 (cache keys, log correlation)"""
    return hashlib.sha256(data.encode()).hexdigest()[:length]
