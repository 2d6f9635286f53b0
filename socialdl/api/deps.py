from dataclasses import dataclass
from typing import Callable

import httpx
from fastapi import Request

from socialdl.config.settings import Settings
from socialdl.core.security import SecurityValidator
from socialdl.i18n import i18n
from socialdl.services.download import DownloadService
from socialdl.services.info import MetadataService
from socialdl.services.instagram import InstagramResolver
from socialdl.services.relay import StreamRelay
from socialdl.services.youtube import YouTubeExtractor
from socialdl.services.ytdlp import YTDLPCommandBuilder
from socialdl.utils.http_client import BrowserClient
from socialdl.utils.locale import get_locale


@dataclass
class Services:
    """Everything the routes need, wired once per application"""
    commands: YTDLPCommandBuilder
    youtube: YouTubeExtractor
    instagram: InstagramResolver
    metadata: MetadataService
    downloads: DownloadService
    relay: StreamRelay


def build_services(settings: Settings, client: httpx.AsyncClient) -> Services:
    commands = YTDLPCommandBuilder(settings)
    http = BrowserClient(client)
    youtube = YouTubeExtractor(settings, commands)
    instagram = InstagramResolver.default(settings, commands, http)

    return Services(
        commands=commands,
        youtube=youtube,
        instagram=instagram,
        metadata=MetadataService(youtube, instagram),
        downloads=DownloadService(settings, youtube, instagram),
        relay=StreamRelay(settings, commands, http),
    )


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_translator(request: Request) -> Callable[..., str]:
    locale = get_locale(request.headers.get("accept-language"), request.app.state.settings.i18n)
    return i18n.translator(locale)


def get_metadata_service(request: Request) -> MetadataService:
    return request.app.state.services.metadata


def get_download_service(request: Request) -> DownloadService:
    return request.app.state.services.downloads


def get_instagram_resolver(request: Request) -> InstagramResolver:
    return request.app.state.services.instagram


def get_stream_relay(request: Request) -> StreamRelay:
    return request.app.state.services.relay


def get_security_validator(request: Request) -> SecurityValidator:
    return SecurityValidator(request.app.state.settings.security, request.app.state.runtime.redis)
