"""
Logging setup shared by the web app and the CLI.

One stream handler on the root logger; modules log through
logging.getLogger(__name__) and Flask's app.logger propagates to it.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_HANDLER_NAME = "invoicing-console"


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure the root logger.

    Safe to call more than once (tests build several apps); the console
    handler is only installed the first time.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))

    if any(getattr(h, "name", None) == _HANDLER_NAME for h in root_logger.handlers):
        return

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.set_name(_HANDLER_NAME)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    root_logger.addHandler(console_handler)

    # httpx logs every request at INFO; keep provider traffic at WARNING
    logging.getLogger("httpx").setLevel(logging.WARNING)
