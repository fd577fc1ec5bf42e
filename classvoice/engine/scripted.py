"""In-memory speech engine driven by explicit calls."""

import logging
from typing import Optional

from ..capture.errors import EngineErrorKind
from ..exceptions import EngineError
from .base import ContinuousSpeechEngine

logger = logging.getLogger(__name__)


class ScriptedSpeechEngine(ContinuousSpeechEngine):
    """Engine whose events are produced by the caller.

    Used for dry runs and tests. ``start`` and ``stop`` only record the
    request; call :meth:`emit_start`, :meth:`emit_result` and friends to play
    the engine's side. With ``auto_start`` the engine confirms each start
    immediately.
    """

    def __init__(self, auto_start: bool = False):
        super().__init__()
        self.auto_start = auto_start
        self.start_calls = 0
        self.stop_calls = 0
        self._running = False
        self._fail_starts = 0
        self._failure: Optional[Exception] = None

    def fail_next_start(self, times: int = 1, error: Optional[Exception] = None) -> None:
        """Make the next ``times`` calls to :meth:`start` raise."""
        self._fail_starts = times
        self._failure = error

    def start(self) -> None:
        self.start_calls += 1
        if self._fail_starts > 0:
            self._fail_starts -= 1
            raise self._failure or EngineError("scripted start failure")
        self._running = True
        logger.debug(f"Scripted engine start #{self.start_calls}")
        if self.auto_start:
            self._emit_start()

    def stop(self) -> None:
        self.stop_calls += 1
        self._running = False

    def is_running(self) -> bool:
        return self._running

    def emit_start(self) -> None:
        self._running = True
        self._emit_start()

    def emit_result(self, transcript: str, is_final: bool = True) -> None:
        self._emit_result(transcript, is_final)

    def emit_error(self, kind: "str | EngineErrorKind") -> None:
        self._emit_error(kind)

    def emit_end(self) -> None:
        self._running = False
        self._emit_end()
