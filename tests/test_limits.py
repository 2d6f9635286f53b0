import pytest

from socialdl.api.deps import get_stream_relay
from socialdl.infra.concurrency import ACQUIRE_SCRIPT
from socialdl.infra.rate_limit import RATE_LIMIT_SCRIPT
from socialdl.services.relay import StreamRelay
from socialdl.services.ytdlp import YTDLPCommandBuilder
from tests.fakes import FakeSource


class FakeRedis:
    """Answers the limiter scripts with canned verdicts"""

    def __init__(self, rate=(1, 0), slot=1):
        self.rate = rate
        self.slot = slot
        self.deleted = []
        self.decrements = 0
        self.acquired = 0

    async def eval(self, script, numkeys, *args):
        if script == RATE_LIMIT_SCRIPT:
            return list(self.rate)
        if script == ACQUIRE_SCRIPT:
            self.acquired += self.slot
            return self.slot
        raise AssertionError("unexpected script")

    async def delete(self, key):
        self.deleted.append(key)

    async def decr(self, key):
        self.decrements += 1

    async def ping(self):
        return True


@pytest.mark.asyncio
async def test_rate_limit_disabled_by_default(app, client):
    app.state.runtime.redis = FakeRedis(rate=(0, 30))

    response = await client.post("/api/download", json={})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_rate_limited(app, client, settings):
    settings.rate_limit.enabled = True
    app.state.runtime.redis = FakeRedis(rate=(0, 30))

    response = await client.post("/api/download", json={"url": "https://youtu.be/dQw4w9WgXcQ"})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "30"
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_relay_slots_exhausted(app, client):
    app.state.runtime.redis = FakeRedis(slot=0)

    response = await client.get("/api/stream", params={"url": "https://youtu.be/dQw4w9WgXcQ"})

    assert response.status_code == 503
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_relay_slot_released_on_failure(app, client):
    redis = FakeRedis(slot=1)
    app.state.runtime.redis = redis

    response = await client.get("/api/stream", params={"url": "https://www.tiktok.com/@a/video/1"})

    assert response.status_code == 400
    assert len(redis.deleted) == 1
    assert redis.decrements == 1


@pytest.mark.asyncio
async def test_health_reports_redis(app, client):
    app.state.runtime.redis = FakeRedis()

    response = await client.get("/api/health")

    assert response.json()["redis"] == "connected"


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [
    {"url": "https://youtu.be/dQw4w9WgXcQ", "format": "avi"},
    {"url": "https://youtu.be/dQw4w9WgXcQ", "format": "wav"},
])
async def test_invalid_query_never_holds_a_slot(app, client, params):
    redis = FakeRedis(slot=1)
    app.state.runtime.redis = redis

    for _ in range(3):
        response = await client.get("/api/stream", params=params)
        assert response.status_code == 400

    assert redis.acquired == redis.decrements
    assert len(redis.deleted) == redis.decrements


@pytest.mark.asyncio
async def test_slot_released_after_streaming(app, client, settings):
    redis = FakeRedis(slot=1)
    app.state.runtime.redis = redis
    relay = StreamRelay(settings, YTDLPCommandBuilder(settings), None)
    relay.youtube_source = lambda url, format_str: FakeSource([b"a", b"b"], content_type="video/mp4")
    app.dependency_overrides[get_stream_relay] = lambda: relay

    response = await client.get("/api/stream", params={"url": "https://youtu.be/dQw4w9WgXcQ"})

    assert response.status_code == 200
    assert response.content == b"ab"
    assert redis.acquired == 1
    assert redis.decrements == 1
