"""Structured logging for the gate, built on structlog.

Every log line is a key/value event. Commands proposed by agents can be
arbitrarily long, so ``command`` values are clipped by a processor before
rendering, and every event carries the gate version.
"""

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, MutableMapping, Optional

import structlog
from structlog.typing import Processor

from agentgate import __version__

if TYPE_CHECKING:
    from agentgate.config.schemas import AgentGateConfig

MAX_LOGGED_COMMAND_LENGTH = 120
COMMAND_KEYS = ("command", "shell_command")


def clip_commands(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Shorten command strings so one event stays on one readable line."""
    for key in COMMAND_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > MAX_LOGGED_COMMAND_LENGTH:
            event_dict[key] = value[:MAX_LOGGED_COMMAND_LENGTH] + "..."
    return event_dict


def add_gate_version(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    event_dict.setdefault("gate_version", __version__)
    return event_dict


def build_processors(json_format: bool) -> list[Processor]:
    """Processor chain shared by console and JSON output."""
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        clip_commands,
        add_gate_version,
    ]

    if json_format:
        return [
            *shared,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [
        *shared,
        structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
    ]


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    json_format: bool = True,
) -> None:
    """Configure structured logging for the gate.

    Log lines go to stderr so that stdout stays free for decisions printed
    by the CLI.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a log file that receives the same lines
        json_format: Whether to use JSON format (True) or console format (False)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        stream=sys.stderr,
    )
    logging.getLogger("agentgate").setLevel(log_level)

    structlog.configure(
        processors=build_processors(json_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        logging.getLogger().addHandler(file_handler)


def setup_logging_from_config(config: "AgentGateConfig") -> None:
    """Configure logging from the ``log_level`` and ``telemetry`` settings."""
    setup_logging(
        level=config.log_level,
        log_file=config.telemetry.log_file,
        json_format=config.telemetry.json_format,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for the given module name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables (e.g. session_id) to all future log messages."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove context variables from future log messages."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all context variables."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind context variables for the duration of a block.

    Example:
        with log_context(approval_id=approval_id):
            ...  # every event logged here carries approval_id
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


class LoggerMixin:
    """Mixin class to provide logging capabilities to classes."""

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        """Get logger bound to this class."""
        if not hasattr(self, "_logger"):
            self._logger = get_logger(self.__class__.__module__)
        return self._logger
