from typing import Tuple

from socialdl.models.internal import Platform

# Checked in order; first match wins.
PLATFORM_MARKERS: Tuple[Tuple[Platform, Tuple[str, ...]], ...] = (
    (Platform.YOUTUBE, ("youtube.com", "youtu.be")),
    (Platform.INSTAGRAM, ("instagram.com",)),
    (Platform.TIKTOK, ("tiktok.com",)),
)


def classify(url: str) -> Platform:
    """
    Map a URL to a platform by substring containment.
    No parsing: a query parameter mentioning another site can misclassify.
    """
    url = url or ""
    for platform, markers in PLATFORM_MARKERS:
        if any(marker in url for marker in markers):
            return platform
    return Platform.UNKNOWN
