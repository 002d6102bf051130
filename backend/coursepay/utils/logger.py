"""
Logging setup — console plus LOG_DIR/server.log, one format for every module.
"""
import logging
import os

from coursepay.config import get_settings

_FORMAT = "%(asctime)s - %(name)s: %(message)s"
_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    """Attach console and file handlers to the package root logger once."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    root = logging.getLogger("coursepay")
    root.setLevel(logging.DEBUG if settings.DEBUG else level)
    formatter = logging.Formatter(_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    try:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(settings.LOG_DIR, "server.log"), encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError:
        root.warning("log directory %s is not writable; logging to console only", settings.LOG_DIR)

    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Module logger under the `coursepay` namespace."""
    configure_logging()
    if not name.startswith("coursepay"):
        name = f"coursepay.{name}"
    return logging.getLogger(name)
