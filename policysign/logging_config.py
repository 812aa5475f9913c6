import logging
from typing import Optional

from policysign.config import settings
from policysign.middleware import correlation_id_var

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(correlation_id)s] %(message)s"


class CorrelationIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


def configure_logging(level: Optional[str] = None) -> None:
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())

    # Idempotent: uvicorn reloads and test sessions call this repeatedly.
    for handler in root.handlers:
        if getattr(handler, "_policysign", False):
            return

    handler = logging.StreamHandler()
    handler._policysign = True
    handler.addFilter(CorrelationIDFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
