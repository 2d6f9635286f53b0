import asyncio
import ipaddress
import socket
from enum import Enum, auto
from typing import Optional, Union
from urllib.parse import urlparse

from redis.asyncio import Redis

from socialdl.config.settings import SecurityConfig
from socialdl.core.errors import BlockedUrl, InvalidUrl
from socialdl.utils.hash import hash_stable

SSRF_CACHE_TTL = 300


class UrlValidationResult(Enum):
    """URL validation result without throwing exceptions"""
    OK = auto()
    BLOCKED = auto()
    INVALID = auto()


class SecurityValidator:
    """
    Validate relay targets against SSRF without throwing exceptions.
    Verdicts are cached in Redis per hostname when Redis is available.
    """

    def __init__(self, config: SecurityConfig, redis: Optional[Redis] = None):
        self.config = config
        self.redis = redis

    def _is_blocked(self, ip: Union[ipaddress.IPv4Address, ipaddress.IPv6Address]) -> bool:
        if ip.is_loopback:
            return not self.config.allow_localhost
        if ip.is_private:
            return not self.config.allow_private_ips
        return ip.is_link_local or ip.is_multicast or ip.is_unspecified

    async def validate_url(self, url: str) -> UrlValidationResult:
        try:
            parsed = urlparse(url)
        except ValueError:
            return UrlValidationResult.INVALID

        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return UrlValidationResult.INVALID

        if not self.config.enable_ssrf_protection:
            return UrlValidationResult.OK

        hostname = parsed.hostname
        cache_key = f"ssrf:{hash_stable(hostname)}"

        if self.redis:
            try:
                cached = await self.redis.get(cache_key)
            except Exception:
                cached = None
            if cached == "ok":
                return UrlValidationResult.OK
            if cached == "blocked":
                return UrlValidationResult.BLOCKED

        try:
            addr_info = await asyncio.to_thread(socket.getaddrinfo, hostname, None)
            ips = [info[4][0] for info in addr_info]
        except socket.gaierror:
            # Unresolvable: nothing private to reach, let the upstream fetch fail
            return UrlValidationResult.OK

        is_blocked = False
        for ip_str in ips:
            try:
                ip = ipaddress.ip_address(ip_str.split("%")[0])
            except ValueError:
                return UrlValidationResult.INVALID
            if self._is_blocked(ip):
                is_blocked = True
                break

        if self.redis:
            try:
                await self.redis.setex(cache_key, SSRF_CACHE_TTL, "blocked" if is_blocked else "ok")
            except Exception:
                pass

        return UrlValidationResult.BLOCKED if is_blocked else UrlValidationResult.OK

    async def ensure_allowed(self, url: str) -> None:
        """Raise BlockedUrl / InvalidUrl unless the relay may fetch url"""
        verdict = await self.validate_url(url)
        if verdict is UrlValidationResult.BLOCKED:
            raise BlockedUrl()
        if verdict is UrlValidationResult.INVALID:
            raise InvalidUrl()
