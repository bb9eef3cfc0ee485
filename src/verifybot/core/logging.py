"""Structured logging configuration with JSON output and context injection."""

import contextvars
import logging
import logging.config

import structlog

# Context var for the verification session being driven (per asyncio task)
verification_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "verification_id", default="no-verification-id"
)


def get_verification_id() -> str:
    """Get current verification ID from context."""
    return verification_id_var.get()


def set_verification_id(verification_id: str) -> None:
    """Set verification ID for current context."""
    verification_id_var.set(verification_id)
    structlog.contextvars.bind_contextvars(verification_id=verification_id)


def _level_number(level: str) -> int:
    number = logging.getLevelName(level.upper())
    return number if isinstance(number, int) else logging.INFO


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog with JSON output for production.

    ``level`` filters both structlog calls and stdlib records (discord.py, uvicorn).
    """
    level_number = _level_number(level)
    structlog.configure(
        processors=[
            # Inject verification ID into every log
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_number),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # discord.py and uvicorn log through stdlib; route them through structlog rendering
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "processor": structlog.dev.ConsoleRenderer(colors=False),
                },
            },
            "handlers": {
                "default": {
                    "level": level_number,
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                "": {
                    "handlers": ["default"],
                    "level": level_number,
                    "propagate": True,
                },
                # Gateway heartbeat chatter
                "discord.gateway": {"level": "WARNING"},
            },
        }
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structlog logger bound to its module name.

    The logger stays lazy until first use, so module-level loggers pick up
    the level set by ``configure_logging`` at startup.
    """
    return structlog.get_logger(name)
