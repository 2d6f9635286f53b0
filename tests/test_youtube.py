import asyncio
import json

import pytest

from socialdl.core.errors import InvalidUrl, UpstreamUnavailable
from socialdl.services.youtube import (
    YouTubeExtractor,
    describe_format,
    is_valid_youtube_url,
    normalize_youtube_url,
    representative_thumbnail,
    select_audio_format,
    select_video_format,
)
from socialdl.services.ytdlp import CompletedProcess, SubprocessExecutor, YTDLPCommandBuilder, first_line

WATCH = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


@pytest.mark.parametrize("url", [
    "https://youtu.be/dQw4w9WgXcQ",
    "https://youtu.be/dQw4w9WgXcQ?t=42",
    "https://www.youtube.com/shorts/dQw4w9WgXcQ",
    "https://www.youtube.com/embed/dQw4w9WgXcQ",
    "https://m.youtube.com/watch?v=dQw4w9WgXcQ&list=PL123",
    "youtube.com/watch?v=dQw4w9WgXcQ",
])
def test_normalize_to_watch_url(url):
    assert normalize_youtube_url(url) == WATCH


@pytest.mark.parametrize("url", [
    "https://www.youtube.com/watch?v=short",
    "https://www.youtube.com/channel/UC123",
    "https://youtu.be/",
    "https://example.com/watch?v=dQw4w9WgXcQ",
])
def test_invalid_urls(url):
    assert not is_valid_youtube_url(url)
    assert normalize_youtube_url(url) == url


def test_canonical_url_rejects_invalid(settings):
    extractor = YouTubeExtractor(settings, YTDLPCommandBuilder(settings))
    with pytest.raises(InvalidUrl) as exc_info:
        extractor.canonical_url("https://www.youtube.com/feed/trending")
    assert exc_info.value.key == "error.invalid_youtube_url"


def test_select_video_prefers_compatibility_profile(rick_details):
    chosen = select_video_format(rick_details["formats"], "18")
    assert chosen["format_id"] == "18"
    assert describe_format(chosen) == "360p"


def test_select_video_falls_back_to_highest_progressive():
    formats = [
        {"format_id": "22", "vcodec": "avc1", "acodec": "mp4a", "height": 720},
        {"format_id": "17", "vcodec": "mp4v", "acodec": "mp4a", "height": 144},
        {"format_id": "137", "vcodec": "avc1", "acodec": "none", "height": 1080},
    ]
    assert select_video_format(formats, "18")["format_id"] == "22"


def test_select_video_without_progressive():
    assert select_video_format([{"format_id": "137", "vcodec": "avc1", "acodec": "none"}], "18") is None


def test_select_audio_by_bitrate(rick_details):
    chosen = select_audio_format(rick_details["formats"])
    assert chosen["format_id"] == "251"
    assert describe_format(chosen) == "135kbps"


def test_select_audio_none_for_video_only():
    assert select_audio_format([{"format_id": "137", "vcodec": "avc1", "acodec": "none"}]) is None


def test_representative_thumbnail():
    assert representative_thumbnail({"thumbnail": "a.jpg"}) == "a.jpg"
    assert representative_thumbnail({"thumbnails": [{"url": "small.jpg"}, {"url": "big.jpg"}]}) == "big.jpg"
    assert representative_thumbnail({}) == ""


def test_commands(settings):
    commands = YTDLPCommandBuilder(settings)
    info = commands.build_info_command(WATCH)
    assert info[0] == settings.ytdlp.binary
    assert info[-2:] == ["--dump-json", WATCH]
    assert "--no-playlist" in info

    stream = commands.build_stream_command(WATCH, "18")
    assert stream[stream.index("-f") + 1] == "18"
    assert stream[stream.index("-o") + 1] == "-"
    assert stream[-1] == WATCH


def test_first_line():
    assert first_line(b"\n  https://cdn.example/a.mp4\nhttps://cdn.example/b.m4a\n") == "https://cdn.example/a.mp4"
    assert first_line(b"") is None


def _fake_run(returncode=0, stdout=b"", stderr=b"", error=None):
    calls = []

    async def run(cmd, timeout, capture_stderr=True):
        calls.append(cmd)
        if error is not None:
            raise error
        return CompletedProcess(returncode=returncode, stdout=stdout, stderr=stderr)

    return run, calls


@pytest.mark.asyncio
async def test_fetch_details(settings, monkeypatch, rick_details):
    run, calls = _fake_run(stdout=json.dumps(rick_details).encode())
    monkeypatch.setattr(SubprocessExecutor, "run", staticmethod(run))

    details = await YouTubeExtractor(settings, YTDLPCommandBuilder(settings)).fetch_details(WATCH)

    assert details["title"] == "Rick Astley - Never Gonna Give You Up"
    assert calls[0][-1] == WATCH


@pytest.mark.asyncio
@pytest.mark.parametrize("stderr, key", [
    (b"ERROR: [youtube] dQw4w9WgXcQ: Private video. Sign in", "error.youtube_private"),
    (b"ERROR: [youtube] dQw4w9WgXcQ: Video unavailable", "error.youtube_unavailable"),
    (b"ERROR: Read timed out", "error.timeout"),
    (b"ERROR: something else", "error.upstream_unavailable"),
])
async def test_fetch_details_failures(settings, monkeypatch, stderr, key):
    run, _ = _fake_run(returncode=1, stderr=stderr)
    monkeypatch.setattr(SubprocessExecutor, "run", staticmethod(run))

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await YouTubeExtractor(settings, YTDLPCommandBuilder(settings)).fetch_details(WATCH)
    assert exc_info.value.key == key


@pytest.mark.asyncio
async def test_fetch_details_timeout(settings, monkeypatch):
    run, _ = _fake_run(error=asyncio.TimeoutError())
    monkeypatch.setattr(SubprocessExecutor, "run", staticmethod(run))

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await YouTubeExtractor(settings, YTDLPCommandBuilder(settings)).fetch_details(WATCH)
    assert exc_info.value.key == "error.timeout"


@pytest.mark.asyncio
async def test_fetch_details_bad_json(settings, monkeypatch):
    run, _ = _fake_run(stdout=b"not json")
    monkeypatch.setattr(SubprocessExecutor, "run", staticmethod(run))

    with pytest.raises(UpstreamUnavailable):
        await YouTubeExtractor(settings, YTDLPCommandBuilder(settings)).fetch_details(WATCH)
