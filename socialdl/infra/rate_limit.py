from fastapi import HTTPException, Request

from socialdl.i18n import i18n
from socialdl.utils.locale import get_locale

RATE_LIMIT_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])

local current = redis.call('INCR', key)
if current == 1 then
    redis.call('EXPIRE', key, window)
end

if current > limit then
    local ttl = redis.call('TTL', key)
    return {0, ttl}
end

return {1, 0}
"""


class RedisRateLimiter:
    """Per-client, per-path fixed window limiter. No-op without Redis."""

    async def __call__(self, request: Request):
        settings = request.app.state.settings
        if not settings.rate_limit.enabled:
            return True

        redis = request.app.state.runtime.redis
        if not redis:
            return True

        client_ip = request.client.host if request.client else "unknown"
        key = f"rate:{client_ip}:{request.url.path}"

        try:
            allowed, ttl = await redis.eval(
                RATE_LIMIT_SCRIPT,
                1,
                key,
                settings.rate_limit.max_requests,
                settings.rate_limit.window_seconds
            )
        except Exception:
            # Redis hiccup: fail open
            return True

        if not allowed:
            locale = get_locale(request.headers.get("accept-language"), settings.i18n)
            raise HTTPException(
                status_code=429,
                detail=i18n.get("error.rate_limit", locale=locale, seconds=ttl),
                headers={"Retry-After": str(ttl)}
            )
        return True


rate_limiter = RedisRateLimiter()
