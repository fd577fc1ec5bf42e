"""User-facing notices for the capture pipeline."""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    """Severity of a notice."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notice:
    """A short, non-blocking message for the display surface."""
    level: NoticeLevel
    code: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


class Notifier(Protocol):
    """Anything that can display a notice. Must not block."""

    def notify(self, notice: Notice) -> None: ...


_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.ERROR,
}


class NoticeBoard:
    """Keeps the most recent notices for display and logs each one."""

    def __init__(self, max_notices: int = 50):
        self._lock = threading.Lock()
        self._notices: deque[Notice] = deque(maxlen=max_notices)

    def notify(self, notice: Notice) -> None:
        """Post a notice."""
        logger.log(_LOG_LEVELS[notice.level], f"[{notice.code}] {notice.message}")
        with self._lock:
            self._notices.append(notice)

    def recent(self, limit: int = 20) -> list[Notice]:
        """Get the most recent notices, newest first."""
        with self._lock:
            notices = list(self._notices)
        notices.reverse()
        return notices[:limit]

    def clear(self) -> None:
        """Clear all notices."""
        with self._lock:
            self._notices.clear()

    @property
    def count(self) -> int:
        """Get number of stored notices."""
        with self._lock:
            return len(self._notices)
