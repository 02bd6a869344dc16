"""Logging for the marketplace domain.

structlog renders through stdlib logging. Development gets a colour console
with rich tracebacks, production and staging get one JSON object per line.
Outside tests, records are also written to rotating files under
``MARKETPLACE_LOG_DIR`` (``logs/`` by default).

Gateway callbacks carry signatures and merchant credentials, so every event
passes through :func:`redact_secrets` before it is rendered.
"""

import logging
import logging.handlers
import os
import sys
from contextlib import contextmanager
from pathlib import Path

import structlog

LEVELS_BY_ENVIRONMENT = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

JSON_ENVIRONMENTS = frozenset({"production", "staging"})

# Keys whose values never reach a log line, at any nesting depth.
SECRET_KEYS = frozenset(
    {
        "signature",
        "vnp_securehash",
        "accesskey",
        "access_key",
        "secret",
        "secret_key",
        "hash_secret",
    }
)
REDACTED = "***"

ROTATE_BYTES = 10 * 1024 * 1024
ROTATE_BACKUPS = 5


def environment() -> str:
    return (os.getenv("ENV") or os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def get_log_level(env: str | None = None) -> str:
    """LOG_LEVEL wins; otherwise the environment's default level."""
    env = env or environment()
    return os.getenv("LOG_LEVEL", LEVELS_BY_ENVIRONMENT.get(env, "INFO")).upper()


def _redact(value):
    if isinstance(value, dict):
        return {k: REDACTED if str(k).lower() in SECRET_KEYS else _redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v) for v in value)
    return value


def redact_secrets(_logger, _method_name, event_dict):
    """structlog processor masking gateway credentials and signatures."""
    return _redact(event_dict)


def _rotating_handler(path: Path, level) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=ROTATE_BYTES,
        backupCount=ROTATE_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def setup_stdlib_logging(env: str | None = None, log_dir: Path | None = None) -> None:
    env = env or environment()
    level = get_log_level(env)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    root_logger.addHandler(console)

    if env != "test":
        log_dir = log_dir or Path(os.getenv("MARKETPLACE_LOG_DIR", "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(_rotating_handler(log_dir / "marketplace.log", level))
        root_logger.addHandler(_rotating_handler(log_dir / "marketplace_error.log", logging.ERROR))

    for noisy in ("protean", "asyncio", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]


def setup_structlog(env: str | None = None) -> None:
    env = env or environment()
    processors = shared_processors()
    if env in JSON_ENVIRONMENTS:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=False, max_frames=4),
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(env: str | None = None) -> None:
    env = env or environment()
    setup_stdlib_logging(env)
    setup_structlog(env)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def request_context(**fields):
    """Bind ``fields`` to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(**fields):
        yield
