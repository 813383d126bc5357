import logging
import logging.config
import sys

import structlog
from opentelemetry import trace
from structlog.types import EventDict, Processor

QUIET_LOGGERS = ("pymongo", "motor", "uvicorn.access")


def add_trace_context(_, __, event_dict: EventDict) -> EventDict:
    """Attach the active OpenTelemetry trace and span ids, if any."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        event_dict["trace_id"] = trace.format_trace_id(span_context.trace_id)
        event_dict["span_id"] = trace.format_span_id(span_context.span_id)
    return event_dict


def service_info_processor(service_name: str, environment: str) -> Processor:
    def add_service_info(_, __, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service_name)
        event_dict.setdefault("env", environment)
        return event_dict

    return add_service_info


def drop_color_message_key(_, __, event_dict: EventDict) -> EventDict:
    event_dict.pop("color_message", None)
    return event_dict


def setup_structlog(
    json_logs: bool = False,
    log_level: str = "INFO",
    service_name: str = "backend",
    environment: str = "development",
):
    """
    Route both structlog and stdlib logging through one ProcessorFormatter.

    Console rendering is used in development; JSON lines when ``json_logs``
    is set, so purge reports end up as searchable audit records.
    """
    level = log_level.upper()
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        service_info_processor(service_name, environment),
        add_trace_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        drop_color_message_key,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    loggers: dict[str, dict] = {
        "": {"handlers": ["default"], "level": level, "propagate": True},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"handlers": [], "level": "WARNING", "propagate": True}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "()": "structlog.stdlib.ProcessorFormatter",
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                    "foreign_pre_chain": shared_processors,
                },
            },
            "handlers": {
                "default": {
                    "level": level,
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": loggers,
        }
    )

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    def log_uncaught(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        structlog.get_logger("uncaught_exception").error(
            "Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback)
        )

    sys.excepthook = log_uncaught
