import logging
import sys
from typing import Any

from loguru import logger

from app.config import get_settings


class InterceptHandler(logging.Handler):
    """Intercept stdlib logging and redirect to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore[assignment]
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _noise_log_filter(record: dict[str, Any]) -> bool:
    """Only show health checks and render status polls at DEBUG level."""
    message = record.get("message", "")
    if "/health" in message or ("/render" in message and "GET" in message):
        return bool(record["level"].no <= 10)
    return True


def _context_suffix(record: dict[str, Any]) -> str:
    """Render bound context (record_id, job_id, ...) after the message."""
    extra = {k: v for k, v in record["extra"].items() if k != "name"}
    if not extra:
        return ""
    return " | " + " ".join(f"{k}={v}" for k, v in extra.items())


def _format(colorize: bool) -> Any:
    def formatter(record: dict[str, Any]) -> str:
        record["extra"]["_ctx"] = _context_suffix(record)
        if colorize:
            return (
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level>{extra[_ctx]}\n{exception}"
            )
        return (
            "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | "
            "{message}{extra[_ctx]}\n{exception}"
        )

    return formatter


def setup_logging() -> None:
    """Configure loguru for the application."""
    settings = get_settings()

    # Remove default handler
    logger.remove()

    # Console output with colors in debug, plain format in production
    if settings.debug:
        logger.add(
            sys.stderr,
            level="DEBUG",
            format=_format(colorize=True),
            backtrace=True,
            diagnose=True,
        )
    else:
        logger.add(
            sys.stderr,
            level="INFO",
            format=_format(colorize=False),
            filter=_noise_log_filter,
            backtrace=True,
            diagnose=False,
        )

    # Intercept stdlib logging (uvicorn, sqlalchemy, httpx, etc.)
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in [
        "uvicorn",
        "uvicorn.error",
        "uvicorn.access",
        "sqlalchemy.engine",
        "httpx",
    ]:
        logging.getLogger(name).handlers = [InterceptHandler()]


def get_logger(name: str) -> Any:
    """Get a logger bound to a name (for compatibility with existing code)."""
    return logger.bind(name=name)
