# engine/logger.py
"""
Process-wide logging, configured once from the environment.

LOG_LEVEL, LOG_TO_STDOUT, LOG_TO_FILE, LOG_FILE, LOG_MAX_BYTES and
LOG_BACKUPS pick the handlers; LOG_HTTP=true keeps urllib3's per-request
debug lines.
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_LOG_FILE = "/data/shopcrawl.log"

_configured = False


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def build_handlers(
    level: int,
    to_stdout: bool = True,
    log_file: Optional[str] = None,
    max_bytes: int = 2 * 1024 * 1024,
    backups: int = 3,
) -> List[logging.Handler]:
    """
    Handlers for the root logger. A log file that cannot be opened is
    reported on stderr and skipped so the app keeps running.
    """
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: List[logging.Handler] = []
    if to_stdout:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        try:
            os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
            handlers.append(
                RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backups)
            )
        except OSError as e:
            print(f"shopcrawl: file logging disabled ({log_file}: {e})", file=sys.stderr)
    for h in handlers:
        h.setLevel(level)
        h.setFormatter(formatter)
    return handlers


def setup_logging() -> None:
    global _configured
    if _configured:
        return

    root = logging.getLogger()
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    root.setLevel(level)

    # Host applications may already have configured the root logger
    if not root.handlers:
        handlers = build_handlers(
            level,
            to_stdout=_flag("LOG_TO_STDOUT", "true"),
            log_file=os.getenv("LOG_FILE", DEFAULT_LOG_FILE) if _flag("LOG_TO_FILE", "true") else None,
            max_bytes=int(os.getenv("LOG_MAX_BYTES", str(2 * 1024 * 1024))),
            backups=int(os.getenv("LOG_BACKUPS", "3")),
        )
        for h in handlers:
            root.addHandler(h)

    if not _flag("LOG_HTTP", "false"):
        logging.getLogger("urllib3").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str | None = None) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)
