"""Structured logging for shellwrap.

structlog renders both shellwrap's own events and records from standard
library loggers (mcp, anyio), so a single stream carries one format. Every
line goes to stderr: when serving over stdio, stdout belongs to the protocol.
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from shellwrap.settings import ServerSettings

# Third-party loggers that are chatty below WARNING
_QUIET_LOGGERS = ("mcp", "anyio", "asyncio")


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(settings: "ServerSettings | None" = None) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        settings: Server settings. If None, logs warnings and above to the
            console format.
    """
    level_name = settings.log_level if settings is not None else "warning"
    log_format = settings.log_format if settings is not None else "console"
    level = logging.getLevelName(level_name.upper())
    renderer = _renderer(log_format)

    processors = [*_shared_processors(), structlog.processors.StackInfoRenderer()]
    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger, optionally named after a component."""
    return structlog.get_logger(name) if name else structlog.get_logger()


def bind_context(**kwargs: object) -> None:
    """Bind values to every log call in the current context.

    Example:
        bind_context(tool="list_files")
        logger.info("tool_rejected")  # includes tool="list_files"
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the logging context.

    Args:
        *keys: Keys to remove from context
    """
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


class Loggers:
    """Named loggers for shellwrap components."""

    @staticmethod
    def security() -> structlog.stdlib.BoundLogger:
        """Logger for the security pipeline."""
        return get_logger("shellwrap.security")

    @staticmethod
    def tools() -> structlog.stdlib.BoundLogger:
        """Logger for command execution and auditing."""
        return get_logger("shellwrap.tools")

    @staticmethod
    def config() -> structlog.stdlib.BoundLogger:
        """Logger for configuration loading."""
        return get_logger("shellwrap.config")

    @staticmethod
    def server() -> structlog.stdlib.BoundLogger:
        """Logger for the MCP server."""
        return get_logger("shellwrap.server")

    @staticmethod
    def cli() -> structlog.stdlib.BoundLogger:
        """Logger for CLI commands."""
        return get_logger("shellwrap.cli")
