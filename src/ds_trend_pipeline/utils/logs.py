import logging
import time
from contextlib import contextmanager

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


@contextmanager
def log_timing(label: str, log: logging.Logger = logger):
    """Log when ``label`` starts and how long it took, even if it raised."""
    start = time.perf_counter()
    log.info("Starting %s", label)
    try:
        yield
    finally:
        log.info("%s finished in %.2fms", label, (time.perf_counter() - start) * 1000)
