"""
Process-wide logging setup.

Everything goes to stdout as structured JSON so the same stream can be shipped
to a log collector (Graylog, Loki, CloudWatch...).  Background failures and
fatal errors are logged at CRITICAL with their context in ``extra``.
"""

import logging
import sys

from pythonjsonlogger import jsonlogger

_HANDLER_NAME = "pcr-json"


def configure_logging(level: str = "INFO") -> None:
    """Install the JSON stdout handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel(level)

    if any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s", datefmt="%Y-%m-%dT%H:%M:%S%z"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)

    # engineio/socketio are chatty at INFO
    logging.getLogger("engineio.server").setLevel(logging.WARNING)
    logging.getLogger("socketio.server").setLevel(logging.WARNING)
