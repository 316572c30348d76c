from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

from render_portal.middleware.trace import trace_id_var

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(trace_id)s] %(name)s %(message)s"


class TraceIdFilter(logging.Filter):
    """Stamps each record with the X-Trace-Id of the request being served."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = trace_id_var.get() or "-"
        return True


def _handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(TraceIdFilter())
    return handler


def configure_logging(service_name: str = "render_portal") -> None:
    """
    Log to stdout; also to a rotating file when LOG_TO_FILE=1.

    Safe to call more than once per process: handlers are only installed the
    first time, later calls just re-apply LOG_LEVEL.
    """
    level = getattr(logging, (os.getenv("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, "_render_portal_configured", False):
        return

    formatter = logging.Formatter(os.getenv("LOG_FORMAT") or DEFAULT_FORMAT)
    root.addHandler(_handler(logging.StreamHandler(), level, formatter))

    if os.getenv("LOG_TO_FILE", "0") == "1":
        path = os.getenv("LOG_FILE_PATH") or f"/var/log/render_portal/{service_name}.log"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            file_handler = RotatingFileHandler(
                path,
                maxBytes=int(os.getenv("LOG_FILE_MAX_BYTES", str(10 * 1024 * 1024))),
                backupCount=int(os.getenv("LOG_FILE_BACKUP_COUNT", "5")),
                encoding="utf-8",
            )
        except OSError:
            root.warning("file logging disabled: cannot open %s", path, exc_info=True)
        else:
            root.addHandler(_handler(file_handler, level, formatter))

    root._render_portal_configured = True
