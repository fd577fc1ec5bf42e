"""Contract between the capture pipeline and a continuous speech engine."""

from abc import ABC, abstractmethod
from typing import Optional, Protocol

from ..capture.errors import EngineErrorKind


class EngineListener(Protocol):
    """Receives engine callbacks. Implementations must not block."""

    def on_start(self) -> None: ...

    def on_result(self, transcript: str, is_final: bool) -> None: ...

    def on_error(self, kind: "str | EngineErrorKind") -> None: ...

    def on_end(self) -> None: ...


class ContinuousSpeechEngine(ABC):
    """Turns live audio into interim and final transcript events.

    ``start`` and ``stop`` request a state change; the engine confirms with
    ``on_start`` and ``on_end``. ``start`` may raise if the engine cannot even
    attempt to begin.
    """

    def __init__(self) -> None:
        self._listener: Optional[EngineListener] = None

    def bind(self, listener: EngineListener) -> None:
        """Attach the listener that receives callbacks."""
        self._listener = listener

    @property
    def listener(self) -> Optional[EngineListener]:
        return self._listener

    def warm_up(self) -> None:
        """Load anything slow ahead of the first ``start``.

        Raises:
            EngineError: the engine cannot be prepared
        """

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @abstractmethod
    def is_running(self) -> bool: ...

    @property
    def name(self) -> str:
        return type(self).__name__

    def _emit_start(self) -> None:
        if self._listener is not None:
            self._listener.on_start()

    def _emit_result(self, transcript: str, is_final: bool) -> None:
        if self._listener is not None:
            self._listener.on_result(transcript, is_final)

    def _emit_error(self, kind: "str | EngineErrorKind") -> None:
        if self._listener is not None:
            self._listener.on_error(kind)

    def _emit_end(self) -> None:
        if self._listener is not None:
            self._listener.on_end()
