from typing import Optional
from urllib.parse import urlparse

from socialdl.config.settings import I18nConfig


def get_locale(accept_language: Optional[str], i18n_config: I18nConfig) -> str:
    """Extract locale from Accept-Language header"""
    if not accept_language:
        return i18n_config.default_locale

    languages = []
    for lang in accept_language.split(","):
        parts = lang.strip().split(";")
        locale = parts[0].split("-")[0].lower()
        languages.append(locale)

    for locale in languages:
        if locale in i18n_config.supported_locales:
            return locale

    return i18n_config.default_locale


def safe_url_for_log(url: str) -> str:
    """Safe URL for logging (query strings often carry signed CDN tokens)"""
    try:
        parsed = urlparse(url)
        base_url = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
        if parsed.query:
            return f"{base_url}?..."
        return base_url
    except ValueError:
        return "invalid_url"
