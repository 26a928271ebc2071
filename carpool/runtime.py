from __future__ import annotations

import logging
import os
import re
from pathlib import Path

# urllib3 logs every request line at DEBUG, query string included
_HTTP_LOGGER = "urllib3.connectionpool"
_SECRET_PARAM_RE = re.compile(r"([?&]key=)[^&\s\"]+")


class _RoutingHttpLogFilter(logging.Filter):
    """
    Masks the Directions API key in urllib3 request lines and drops the
    per-request "Starting new connection" lines unless VERBOSE_HTTP_LOGS is set.
    """

    def __init__(self, verbose: bool = False):
        super().__init__()
        self.verbose = verbose

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if not self.verbose and message.lower().startswith("starting new http"):
            return False
        masked = _SECRET_PARAM_RE.sub(r"\1***", message)
        if masked != message:
            record.msg, record.args = masked, ()
        return True


def _env_flag(name: str) -> bool:
    return os.getenv(name, "0").strip().lower() in {"1", "true", "yes", "on"}


def configure_logging(name: str, level: str | None = None) -> logging.Logger:
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    # logger-level filters only see records logged on that logger, so attach
    # to urllib3's pool logger rather than the root
    http_logger = logging.getLogger(_HTTP_LOGGER)
    if not any(isinstance(f, _RoutingHttpLogFilter) for f in http_logger.filters):
        http_logger.addFilter(_RoutingHttpLogFilter(verbose=_env_flag("VERBOSE_HTTP_LOGS")))
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level, logging.INFO))
    return logger


def env_path(name: str, default: str) -> Path:
    return Path(os.getenv(name, default)).expanduser().resolve()
