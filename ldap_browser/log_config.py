"""Application logging.

Log files live in `LOG_DIR` (relative paths are resolved against the CWD) and
are rotated daily by TimedRotatingFileHandler; `retention_days` rotated files
are kept. An empty log dir disables the file handler (console only).
"""
from __future__ import annotations

import glob
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOG_FILE = "app.log"

# Handlers installed by us, removed again on reconfiguration.
_file_handler: logging.Handler | None = None
_console_handler: logging.Handler | None = None


def _parse_level(level: str) -> tuple[str, int]:
    level_str = (level or "INFO").strip().upper()
    if level_str not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level_str = "INFO"
    return level_str, getattr(logging, level_str, logging.INFO)


def setup_logging(level: str = "INFO", log_dir: str = "", retention_days: int = 30) -> None:
    """Configure the root logger: console handler plus optional daily file."""
    global _file_handler, _console_handler

    level_str, log_level = _parse_level(level)
    retention_days = max(1, min(365, int(retention_days or 30)))

    root = logging.getLogger()
    for h in (_file_handler, _console_handler):
        if h is not None and h in root.handlers:
            root.removeHandler(h)
            h.close()
    _file_handler = None

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    root.addHandler(ch)
    _console_handler = ch

    log_dir = (log_dir or "").strip()
    if log_dir:
        log_dir = os.path.abspath(log_dir)
        os.makedirs(log_dir, exist_ok=True)
        fh = TimedRotatingFileHandler(
            os.path.join(log_dir, _LOG_FILE),
            when="midnight",
            interval=1,
            backupCount=retention_days,
            encoding="utf-8",
            utc=True,
        )
        fh.suffix = "%Y-%m-%d"
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        root.addHandler(fh)
        _file_handler = fh
        _cleanup_old_logs(log_dir, retention_days)

    root.setLevel(log_level)

    # ldap3 logs every PDU at DEBUG; keep it and the access log quiet.
    logging.getLogger("uvicorn.access").setLevel(max(log_level, logging.WARNING))
    logging.getLogger("ldap3").setLevel(max(log_level, logging.WARNING))

    logging.getLogger("ldap_browser").info(
        "logging configured: level=%s, dir=%s, retention=%d days",
        level_str, log_dir or "-", retention_days,
    )


def _cleanup_old_logs(log_dir: str, retention_days: int) -> None:
    """Remove rotated files older than retention_days."""
    cutoff = time.time() - (retention_days * 86400)
    for f in glob.glob(os.path.join(log_dir, _LOG_FILE + ".*")):
        try:
            if os.path.getmtime(f) < cutoff:
                os.remove(f)
        except OSError as e:
            logging.getLogger(__name__).debug("cannot remove old log %s: %s", f, e)
