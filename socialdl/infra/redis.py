from typing import Optional

import redis.asyncio as aioredis
from rich.console import Console

from socialdl.config.settings import RedisConfig

console = Console()

ACTIVE_RELAYS_KEY = "active_relays_count"
RELAY_SLOT_PATTERN = "active_relay:*"


async def init_redis(config: RedisConfig) -> Optional[aioredis.Redis]:
    """Connect to Redis and recover the active relay counter; None when unreachable"""
    try:
        redis_client = aioredis.from_url(
            config.url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=config.socket_timeout
        )
        await redis_client.ping()

        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = await redis_client.scan(
                cursor,
                match=RELAY_SLOT_PATTERN,
                count=100
            )
            keys.extend(partial_keys)
            if cursor == 0:
                break

        await redis_client.set(ACTIVE_RELAYS_KEY, len(keys))

        if keys:
            console.print(f"[yellow]✓ Redis connected (recovered {len(keys)} active relays)[/yellow]")
        else:
            console.print("[green]✓ Redis connected[/green]")
        return redis_client

    except Exception as e:
        console.print(f"[yellow]⚠ Redis unavailable, limits disabled: {str(e)}[/yellow]")
        return None


async def close_redis(redis_client: Optional[aioredis.Redis]) -> None:
    if redis_client is not None:
        await redis_client.aclose()
        console.print("[dim]✓ Redis connection closed[/dim]")
