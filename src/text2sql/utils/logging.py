import structlog
import logging
import inspect
import json
from typing import Any, Optional, Union

from text2sql.config_constants import LogLevel

# Module-level flag to prevent multiple configuration
_logging_configured = False


def _add_module_info(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
    """
    Custom processor to add a short module name to log records.

    "text2sql.services.orchestrator" becomes "services.orchestrator".
    """
    logger_name = event_dict.get('logger', 'unknown')

    if logger_name.startswith('text2sql.'):
        module_parts = logger_name.split('.')
        event_dict['module'] = '.'.join(module_parts[-2:])
    else:
        event_dict['module'] = logger_name

    return event_dict


def _pretty_json_renderer(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> str:
    """
    Pretty JSON renderer with 2-space indentation.

    Non-ASCII text (Vietnamese questions) is kept readable.
    """
    return json.dumps(event_dict, indent=2, ensure_ascii=False, default=str)


def configure_logging(log_level: Optional[Union[str, LogLevel]] = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Explicit level; when omitted the level comes from settings
    """

    global _logging_configured

    # ---- guard: run only once ----
    if _logging_configured:
        return
    _logging_configured = True

    if log_level is None:
        from text2sql.config import get_settings
        log_level = get_settings().app.log_level

    level_name = log_level.value if isinstance(log_level, LogLevel) else str(log_level).upper()

    # Configure stdlib logging
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name),
        handlers=[logging.StreamHandler()]
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,  # Adds 'logger' field with module name
            structlog.stdlib.add_log_level,    # Adds 'level' field
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),  # Adds 'timestamp' field (ISO8601)
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _add_module_info,
            _pretty_json_renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def is_logging_configured() -> bool:
    return _logging_configured


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name, typically __name__ to get the module name

    Usage:
        logger = get_logger(__name__)
        logger.info("Schema indexed", documents=42, trace_id="abc-123")

        # Output (pretty formatted JSON):
        # {
        #   "event": "Schema indexed",
        #   "documents": 42,
        #   "trace_id": "abc-123",
        #   "logger": "text2sql.services.schema_indexer",
        #   "level": "info",
        #   "timestamp": "2025-01-22T10:30:00Z",
        #   "module": "services.schema_indexer"
        # }
    """
    return structlog.get_logger(name)


def get_module_logger() -> structlog.stdlib.BoundLogger:
    """
    Get a logger for the calling module automatically.

    Falls back to 'unknown' module name if frame inspection fails.
    """
    module_name = 'unknown'
    frame = None

    try:
        frame = inspect.currentframe()
        if frame is not None and frame.f_back is not None:
            module_name = frame.f_back.f_globals.get('__name__', 'unknown')
    except (AttributeError, RuntimeError):
        # Frame inspection can fail in some environments (e.g., some REPL implementations)
        pass
    finally:
        # Clean up frame references to avoid reference cycles
        if frame is not None:
            del frame

    return get_logger(module_name)
