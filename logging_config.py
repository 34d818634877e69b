"""
Logging setup shared by the app, the routers and the backend.

`setup_logging` is idempotent: calling it again (entrypoint, then app import)
does not stack duplicate handlers unless `force=True`.
"""
import logging
import sys
from typing import Optional

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"

_INITIALIZED = False


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None, force: bool = False) -> None:
    global _INITIALIZED
    if _INITIALIZED and not force:
        return

    root = logging.getLogger()
    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)

    formatter = logging.Formatter(DEFAULT_FORMAT)
    if not root.handlers:
        stream_handler = logging.StreamHandler(sys.stdout)
        root.addHandler(stream_handler)
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        root.addHandler(file_handler)

    for handler in root.handlers:
        handler.setFormatter(formatter)
    root.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))

    # uvicorn's access log is noisy under 2s polling
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["setup_logging", "get_logger"]
