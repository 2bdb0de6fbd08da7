import logging
import sys
from middleware import RequestIDMiddleware

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(request_id)s] - %(name)s - %(message)s'

# Libraries that are chatty at INFO on every request or task
NOISY_LOGGERS = ("sqlalchemy.engine", "celery.worker.strategy", "httpx")


class ContextualFilter(logging.Filter):
    """Stamps every record with the request ID held by the middleware's ContextVar."""
    def filter(self, record: logging.LogRecord) -> bool:
        # Celery workers and scripts log outside a request and get the context default
        record.request_id = RequestIDMiddleware.request_id_context().get()
        return True


def setup_logging(log_level: str = "INFO", log_filename: str | None = "experimentation_engine.log"):
    """
    Configures the root logger with a stdout handler and, unless `log_filename`
    is empty, an appending file handler. Both carry the request id.
    """
    log_filter = ContextualFilter()
    formatter = logging.Formatter(LOG_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_filename:
        handlers.append(logging.FileHandler(log_filename, mode='a'))

    for handler in handlers:
        handler.addFilter(log_filter)
        handler.setFormatter(formatter)

    level = logging.getLevelName(log_level.upper())
    logging.basicConfig(level=level, handlers=handlers)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
