import logging
import structlog
from aloha.core.config import settings

NOISY_LOGGERS = ("passlib", "urllib3", "celery.redirected")


def _add_service_name(logger, method_name, event_dict):
    event_dict.setdefault("service", "aloha-api")
    return event_dict


def configure_logging(debug: bool | None = None):
    """Configure structlog on top of the stdlib logging tree.

    JSON lines outside of debug mode, coloured console output when debugging.
    Context bound with ``structlog.contextvars`` (correlation ids, user ids)
    is merged into every event.
    """
    debug = settings.DEBUG if debug is None else debug
    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _add_service_name,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
