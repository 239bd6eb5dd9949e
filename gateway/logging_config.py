import datetime
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .settings import settings


_LOGGING_CONFIGURED = False
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


class LocalTimezoneFormatter(logging.Formatter):
    """Render timestamps in LOG_TIMEZONE, or the host's local zone when unset."""

    def __init__(self, *args, timezone_name: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._tzinfo = self._resolve_tzinfo(timezone_name)

    @staticmethod
    def _resolve_tzinfo(timezone_name: str | None) -> datetime.tzinfo:
        if timezone_name:
            try:
                return ZoneInfo(timezone_name)
            except ZoneInfoNotFoundError:
                pass
        return datetime.datetime.now().astimezone().tzinfo or datetime.timezone.utc

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.datetime.fromtimestamp(record.created, tz=self._tzinfo)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(timespec="milliseconds")


def _daily_file_handler(log_dir: Path, backup_count: int = 7) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    return TimedRotatingFileHandler(
        log_dir / "gateway.log",
        when="midnight",
        backupCount=backup_count,
        encoding="utf-8",
        delay=True,
    )


def setup_logging() -> None:
    """
    配置一次进程日志：

    - "gateway" logger 写入 LOG_DIR 下按天切分的文件（保留 7 天）；
    - root logger 挂一个控制台 handler，保证 uvicorn 输出可见。
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    level_value = getattr(logging, str(settings.log_level).upper(), logging.INFO)
    formatter = LocalTimezoneFormatter(LOG_FORMAT, timezone_name=settings.log_timezone)

    file_handler = _daily_file_handler(Path(settings.log_dir))
    file_handler.setFormatter(formatter)

    gateway_logger = logging.getLogger("gateway")
    gateway_logger.setLevel(level_value)
    gateway_logger.addHandler(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    _LOGGING_CONFIGURED = True


logger = logging.getLogger("gateway")
