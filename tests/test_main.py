import re

import pytest

from socialdl.api.deps import get_download_service, get_metadata_service
from socialdl.core.errors import UpstreamUnavailable
from socialdl.services.download import DownloadService
from socialdl.services.info import MetadataService
from socialdl.services.instagram import InstagramResolver
from tests.fakes import FakeStrategy, FakeYouTube


@pytest.mark.asyncio
async def test_root_banner(client):
    """Test service banner"""
    response = await client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "OK"
    assert data["service"] == "Social Media Downloader API"
    assert "timestamp" in data


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/health", "/api/test"])
async def test_health_check(client, path):
    """Test public health endpoint"""
    response = await client.get(path)
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["status"] == "OK"
    assert "ytdlp_version" in data
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_unknown_route_uses_error_shape(client):
    response = await client.get("/api/nope")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Endpoint not found"}


@pytest.mark.asyncio
async def test_detect_platform(client):
    response = await client.post("/api/detect-platform", json={"url": "https://youtu.be/dQw4w9WgXcQ"})
    assert response.status_code == 200
    assert response.json() == {"success": True, "platform": "youtube"}


@pytest.mark.asyncio
async def test_detect_platform_unknown_is_not_an_error(client):
    response = await client.post("/api/detect-platform", json={"url": "https://vimeo.com/1"})
    assert response.status_code == 200
    assert response.json()["platform"] == "unknown"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"url": ""}, {"url": "   "}, {"url": None}])
async def test_missing_url_is_rejected(client, body):
    for path in ("/api/detect-platform", "/api/video-info", "/api/download"):
        response = await client.post(path, json=body)
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "URL is required"}


@pytest.mark.asyncio
async def test_missing_url_is_localized(client):
    response = await client.post("/api/detect-platform", json={}, headers={"Accept-Language": "ja,en;q=0.8"})
    assert response.status_code == 400
    assert response.json()["error"] == "URLは必須です"


@pytest.mark.asyncio
async def test_malformed_body_uses_error_shape(client):
    response = await client.post("/api/download", json={"url": "https://youtu.be/dQw4w9WgXcQ", "format": "avi"})
    assert response.status_code == 400
    data = response.json()
    assert data["success"] is False
    assert data["error"].startswith("Invalid request")


@pytest.mark.asyncio
async def test_video_info_youtube(app, client, settings, rick_details):
    youtube = FakeYouTube(settings, details=rick_details)
    app.dependency_overrides[get_metadata_service] = lambda: MetadataService(youtube, InstagramResolver([]))

    response = await client.post("/api/video-info", json={"url": "https://youtu.be/dQw4w9WgXcQ"})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["platform"] == "youtube"
    assert data["title"] == "Rick Astley - Never Gonna Give You Up"
    assert data["duration"] == 212
    assert data["author"] == "Rick Astley"
    assert data["videoUrl"] == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    assert [f["quality"] for f in data["formats"]] == ["720p", "480p", "360p", "Audio"]
    assert youtube.calls == ["https://www.youtube.com/watch?v=dQw4w9WgXcQ"]


@pytest.mark.asyncio
async def test_video_info_unknown_platform_never_extracts(app, client, settings):
    youtube = FakeYouTube(settings)
    strategy = FakeStrategy("fake", result="https://cdn.example/x.mp4")
    app.dependency_overrides[get_metadata_service] = lambda: MetadataService(youtube, InstagramResolver([strategy]))

    response = await client.post("/api/video-info", json={"url": "https://vimeo.com/12345"})

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Unsupported platform. Use YouTube or Instagram URLs.",
    }
    assert youtube.calls == []
    assert strategy.calls == []


@pytest.mark.asyncio
async def test_video_info_upstream_failure(app, client, settings):
    youtube = FakeYouTube(settings, error=UpstreamUnavailable("error.youtube_private"))
    app.dependency_overrides[get_metadata_service] = lambda: MetadataService(youtube, InstagramResolver([]))

    response = await client.post("/api/video-info", json={"url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ"})

    assert response.status_code == 502
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_video_info_tiktok_placeholder(client):
    response = await client.post("/api/video-info", json={"url": "https://www.tiktok.com/@a/video/1"})
    assert response.status_code == 200
    data = response.json()
    assert data["platform"] == "tiktok"
    assert data["title"] == "TikTok Video"
    assert data["message"]


@pytest.mark.asyncio
async def test_download_instagram_direct_file(app, client, settings):
    media_url = "https://cdn.example/video123.mp4"
    instagram = InstagramResolver([FakeStrategy("fake", result=media_url)])
    service = DownloadService(settings, FakeYouTube(settings), instagram)
    app.dependency_overrides[get_download_service] = lambda: service

    response = await client.post(
        "/api/download",
        json={"url": "https://www.instagram.com/reel/abc123/", "format": "mp4"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["downloadUrl"] == media_url
    assert data["isDirectFile"] is True
    assert data["container"] == "mp4"
    assert re.fullmatch(r"instagram_\d+\.mp4", data["filename"])


@pytest.mark.asyncio
async def test_download_instagram_all_methods_failed(app, client, settings):
    instagram = InstagramResolver([
        FakeStrategy("one", error=RuntimeError("boom")),
        FakeStrategy("two", result=""),
    ])
    service = DownloadService(settings, FakeYouTube(settings), instagram)
    app.dependency_overrides[get_download_service] = lambda: service

    response = await client.post("/api/download", json={"url": "https://www.instagram.com/p/abc/"})

    assert response.status_code == 502
    assert response.json() == {"success": False, "error": "Instagram video not available"}


@pytest.mark.asyncio
async def test_download_tiktok_not_supported(client):
    response = await client.post("/api/download", json={"url": "https://www.tiktok.com/@a/video/1"})
    assert response.status_code == 400
    assert response.json()["success"] is False
