import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger once per process.

    Later calls only adjust the level, so importing the app after the
    entrypoint has configured logging does not duplicate handlers.
    """
    global _configured
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    if _configured:
        return root

    formatter = logging.Formatter(LOG_FORMAT)
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Silence per-request access noise from the server
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _configured = True
    root.info(f"Logging is set up: level={log_level}, log_file={log_file}")
    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
