"""Diagnostic log for ``-v`` / ``--debug`` runs.

Operator-facing progress is printed with click. This log carries the detail
behind it (each external command, each sync step) and can be switched to
JSON lines with ``LOG_JSON=1`` when the treadmill runs unattended.
"""

import logging
import sys

import structlog

# HTTP client internals are only interesting with --debug.
_NOISY_LOGGERS = ("httpx", "httpcore")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_logging(level: str, *, json_output: bool = False) -> None:
    """Route stdlib logging through structlog on stderr.

    Args:
        level: DEBUG, INFO, WARNING or ERROR. Unknown names fall back to WARNING.
        json_output: Render JSON lines instead of the console format.
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)
    shared = _shared_processors()

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(
            logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
        )


def bind_context(**kwargs: object) -> None:
    """Tag every following log line of this run, e.g. with the operation and branch."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
