from __future__ import annotations
import json
import logging
from logging.handlers import RotatingFileHandler
from .settings import Settings

LAUNCHER_LOGGER = "mc.launcher"
LAUNCHER_LOG_FILE = "launcher.log"
# uvicorn runs with log_config=None and logs through our handlers
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _formatter(settings: Settings) -> logging.Formatter:
    if settings.log_json:
        return _JsonFormatter()
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(settings: Settings) -> RotatingFileHandler:
    """
    Console output for everything, plus a rotating launcher.log under
    <server root>/launcher-logs for the mc.launcher.* loggers.
    Safe to call again; handlers from an earlier call are replaced.
    """
    level = settings.log_level.upper()
    fmt = _formatter(settings)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    launcher = logging.getLogger(LAUNCHER_LOGGER)
    for old in [h for h in launcher.handlers if isinstance(h, RotatingFileHandler)]:
        launcher.removeHandler(old)
        old.close()
    launcher.setLevel(level)
    launcher.propagate = True

    logs_dir = settings.logs_dir
    logs_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        logs_dir / LAUNCHER_LOG_FILE,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(fmt)
    launcher.addHandler(file_handler)

    for name in UVICORN_LOGGERS:
        uv = logging.getLogger(name)
        uv.handlers.clear()
        uv.setLevel(level)
        uv.propagate = True
    return file_handler


def get_logger(name: str) -> logging.Logger:
    if not name.startswith(LAUNCHER_LOGGER):
        name = f"{LAUNCHER_LOGGER}.{name}"
    return logging.getLogger(name)
