"""Structured logging for billing runs.

A billing run walks many accounts, and each account fans out into
concurrent instrument fetches. Every line therefore has to say which
account it belongs to: the pipeline binds user_id and the account index
with structlog.contextvars, and this module merges them into structlog
and stdlib records alike. Scheduled runs log JSON for collection,
interactive runs log to the console, and timestamps are UTC so lines
line up with bill timestamps. ccxt and aiosqlite request chatter is held
at WARNING so a DEBUG run shows the bill walk rather than every HTTP call.
API keys are never passed here in clear; callers log the masked form.
"""

import logging
import os

import structlog

# Libraries that log every request or statement at DEBUG
_NOISY_LOGGERS = ("ccxt", "aiosqlite", "asyncio", "urllib3")


def setup_logging(log_level: str = "INFO", log_format: str | None = None) -> None:
    """Route structlog and stdlib records through one handler on stderr.

    Per-account fields bound with structlog.contextvars (user id, account
    index) are merged into every line, including lines from concurrent
    instrument fetches.

    Args:
        log_level: Root level name, e.g. "DEBUG".
        log_format: "json" for scheduled runs, "console" for interactive
            ones. Defaults to the LOG_FORMAT environment variable, then console.
    """
    log_format = (log_format or os.environ.get("LOG_FORMAT", "console")).lower()

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: structlog.types.Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
