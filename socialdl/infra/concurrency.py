import uuid

from fastapi import HTTPException, Request

from socialdl.i18n import i18n
from socialdl.infra.redis import ACTIVE_RELAYS_KEY
from socialdl.utils.locale import get_locale

ACQUIRE_SCRIPT = """
local counter_key = KEYS[1]
local slot_key = KEYS[2]
local limit = tonumber(ARGV[1])
local slot_ttl = tonumber(ARGV[2])

local current = tonumber(redis.call('GET', counter_key) or "0")
if current >= limit then
    return 0
end

redis.call('INCR', counter_key)
redis.call('EXPIRE', counter_key, slot_ttl * 2)
redis.call('SETEX', slot_key, slot_ttl, "1")

return 1
"""

SLOT_TTL_SECONDS = 3600


class ConcurrencyLimiter:
    """Bound the number of simultaneous relays (each may hold yt-dlp/ffmpeg processes)"""

    async def __call__(self, request: Request):
        redis = request.app.state.runtime.redis
        if not redis:
            return True

        settings = request.app.state.settings
        slot_key = f"active_relay:{uuid.uuid4()}"

        try:
            allowed = await redis.eval(
                ACQUIRE_SCRIPT,
                2,
                ACTIVE_RELAYS_KEY,
                slot_key,
                settings.download.max_concurrent,
                SLOT_TTL_SECONDS
            )
        except Exception:
            return True

        if not allowed:
            locale = get_locale(request.headers.get("accept-language"), settings.i18n)
            raise HTTPException(
                status_code=503,
                detail=i18n.get("error.server_busy", locale=locale, max=settings.download.max_concurrent)
            )

        request.state.relay_slot_key = slot_key
        return True


async def release_relay_slot(request: Request) -> None:
    slot_key = getattr(request.state, "relay_slot_key", None)
    if not slot_key:
        return

    request.state.relay_slot_key = None
    redis = request.app.state.runtime.redis
    if redis:
        try:
            await redis.delete(slot_key)
            await redis.decr(ACTIVE_RELAYS_KEY)
        except Exception:
            pass


concurrency_limiter = ConcurrencyLimiter()
