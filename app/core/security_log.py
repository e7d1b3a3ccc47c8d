"""
Security event log: rate-limit hits and rejected images.

Events go to the ``security`` logger. When configured with a directory, a
handler appends ``[ISO timestamp] event`` lines to ``security-YYYY-MM-DD.log``
(one file per UTC day) and deletes files older than the retention period.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

_PREFIX = "security-"
_SUFFIX = ".log"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DailySecurityFileHandler(logging.Handler):
    """Writes each record to the file for its day and prunes expired files."""

    def __init__(
        self,
        log_dir: str | Path,
        retention_days: int = 7,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(level=logging.INFO)
        self.log_dir = Path(log_dir)
        self.retention_days = retention_days
        self._now = now

    def emit(self, record: logging.LogRecord) -> None:
        try:
            now = self._now()
            self.log_dir.mkdir(parents=True, exist_ok=True)
            path = self.log_dir / f"{_PREFIX}{now.strftime('%Y-%m-%d')}{_SUFFIX}"
            line = f"[{now.isoformat()}] {record.getMessage()}\n"
            with path.open("a", encoding="utf-8") as fh:
                fh.write(line)
            self._cleanup(now)
        except Exception:
            self.handleError(record)

    def _cleanup(self, now: datetime) -> None:
        cutoff = (now - timedelta(days=self.retention_days)).date()
        for path in self.log_dir.glob(f"{_PREFIX}*{_SUFFIX}"):
            stamp = path.name[len(_PREFIX):-len(_SUFFIX)]
            try:
                day = datetime.strptime(stamp, "%Y-%m-%d").date()
            except ValueError:
                continue
            if day < cutoff:
                try:
                    path.unlink()
                    logger.info("[security_log] deleted old log %s", path.name)
                except OSError as e:
                    logger.warning("[security_log] failed to delete %s: %s", path.name, e)


def configure_security_log(log_dir: str, retention_days: int = 7) -> DailySecurityFileHandler | None:
    """Attach the daily file handler to the security logger. Empty log_dir disables file output."""
    for handler in list(security_logger.handlers):
        if isinstance(handler, DailySecurityFileHandler):
            security_logger.removeHandler(handler)
    if not log_dir:
        logger.info("[security_log] file output disabled")
        return None
    handler = DailySecurityFileHandler(log_dir, retention_days=retention_days)
    security_logger.addHandler(handler)
    security_logger.setLevel(logging.INFO)
    logger.info("[security_log] writing to %s (retention %d days)", log_dir, retention_days)
    return handler


def log_security_event(event: str) -> None:
    security_logger.info(event)
