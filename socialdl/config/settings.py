import json
import logging
import os
from typing import Optional

from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class RedisConfig(BaseModel):
    url: str = Field(default="redis://redis:6379", description="Redis connection URL")
    socket_timeout: int = Field(default=5, description="Redis socket timeout in seconds")


class RateLimitConfig(BaseModel):
    enabled: bool = Field(default=False, description="Enable rate limiting")
    max_requests: int = Field(default=5, ge=1, description="Max requests per window")
    window_seconds: int = Field(default=60, ge=1, description="Rate limit window in seconds")


class DownloadConfig(BaseModel):
    max_concurrent: int = Field(default=10, ge=1, le=100, description="Max concurrent relays")
    metadata_timeout: float = Field(default=15.0, gt=0, description="Wall-clock timeout for metadata lookups")
    resolve_timeout: float = Field(default=30.0, gt=0, description="Timeout for direct URL resolution")
    socket_timeout: int = Field(default=10, ge=1, description="Socket timeout for yt-dlp")
    retries: int = Field(default=3, ge=0, description="Number of retries passed to yt-dlp")
    chunk_size: int = Field(default=256 * 1024, ge=1024, description="Relay chunk size in bytes")
    youtube_video_itag: str = Field(default="18", description="Compatibility profile used for video downloads")


class SecurityConfig(BaseModel):
    enable_ssrf_protection: bool = Field(default=True, description="Enable SSRF protection")
    allow_private_ips: bool = Field(default=False, description="Allow private IP ranges")
    allow_localhost: bool = Field(default=False, description="Allow localhost access")


class YtDlpConfig(BaseModel):
    binary: str = Field(default="yt-dlp", description="yt-dlp executable")
    js_runtime: Optional[str] = Field(default=None, description="JS runtime path (e.g., deno:/usr/local/bin/deno)")


class FfmpegConfig(BaseModel):
    binary: str = Field(default="ffmpeg", description="ffmpeg executable")
    audio_bitrate: str = Field(default="128k", description="MP3 bitrate")
    sample_rate: int = Field(default=44100, description="MP3 sample rate")
    channels: int = Field(default=2, ge=1, le=2, description="MP3 channel count")


class InstagramConfig(BaseModel):
    lookup_api_url: str = Field(
        default="https://instagram-downloader-download-instagram-videos-stories.p.rapidapi.com/index",
        description="Hosted lookup API endpoint"
    )
    lookup_api_key: Optional[str] = Field(default=None, description="Lookup API key (strategy skipped when unset)")
    lookup_api_host: str = Field(
        default="instagram-downloader-download-instagram-videos-stories.p.rapidapi.com",
        description="Lookup API host header"
    )
    timeout: float = Field(default=10.0, gt=0, description="Timeout for lookup and scrape requests")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="%(message)s", description="Log format")
    enable_rich: bool = Field(default=True, description="Enable rich console logging")

    @validator('level')
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class I18nConfig(BaseModel):
    default_locale: str = Field(default="en", description="Default locale")
    supported_locales: list = Field(default=["en", "ja"], description="Supported locales")


class ApiConfig(BaseModel):
    title: str = Field(default="Social Media Downloader API", description="API title")
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")
    max_body_bytes: int = Field(default=1024 * 1024, ge=1024, description="Maximum JSON body size")
    debug: bool = Field(default=False, description="Enable debug mode")


class Settings(BaseSettings):
    """Application settings, built once at startup and passed to every service."""

    model_config = SettingsConfigDict(env_nested_delimiter="__", extra="ignore")

    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(default=10000, description="Listen port (PORT)")
    base_url: Optional[str] = Field(default=None, description="Absolute prefix for download links (BASE_URL)")

    redis: RedisConfig = Field(default_factory=RedisConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    ytdlp: YtDlpConfig = Field(default_factory=YtDlpConfig)
    ffmpeg: FfmpegConfig = Field(default_factory=FfmpegConfig)
    instagram: InstagramConfig = Field(default_factory=InstagramConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @validator('base_url')
    def strip_base_url(cls, v):
        if v:
            return v.rstrip("/")
        return v


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Load settings with priority: config file > env vars > defaults"""
    config_path = config_path or os.getenv("CONFIG_PATH", "config.json")

    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
            logger.info(f"Configuration loaded from {config_path}")
            return Settings(**config_data)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load config from {config_path}: {str(e)}")
            logger.info("Falling back to environment configuration")

    return Settings()
