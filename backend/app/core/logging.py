import logging
import structlog
from pythonjsonlogger import jsonlogger

# Third-party loggers that are noisy at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")

def setup_logging(level: str = "INFO") -> None:
    lvl = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(jsonlogger.JsonFormatter("%(levelname)s %(message)s %(name)s %(asctime)s"))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(lvl)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
