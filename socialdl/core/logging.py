import logging
from typing import Any

from fastapi import Request
from rich.logging import RichHandler

from socialdl.config.settings import LoggingConfig

logger = logging.getLogger("socialdl.request")


def setup_logging(config: LoggingConfig) -> None:
    """Configure the root logger once at startup"""
    if config.enable_rich:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(config.format))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(config.level)


def log_with_context(
    request: Request,
    level: int,
    message: str,
    **kwargs: Any
) -> None:
    """
    Log with request context.
    Automatically includes request_id for tracing.
    """
    request_id = getattr(request.state, "request_id", "unknown")
    extra = {
        "request_id": request_id,
        **kwargs
    }
    logger.log(level, f"[{request_id}] {message}", extra=extra)


def log_info(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.INFO, message, **kwargs)


def log_error(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.ERROR, message, **kwargs)


def log_warning(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.WARNING, message, **kwargs)


def log_debug(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.DEBUG, message, **kwargs)
