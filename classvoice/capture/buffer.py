"""Transcript buffering and timed chunk flushing."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .events import Event, FlushDue
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_DURATION = 7.0  # seconds
DEFAULT_MAX_LENGTH = 1000  # characters


@dataclass
class ChunkEvent:
    """A finished unit of transcript text ready for delivery."""
    transcript: str
    timestamp: datetime
    session_id: str
    chunk_index: int
    speaker_id: Optional[str] = None

    def to_payload(self) -> dict:
        """Serialize for the ingestion service."""
        return {
            "transcript": self.transcript,
            "timestamp": self.timestamp.isoformat(),
            "sessionId": self.session_id,
            "chunkIndex": self.chunk_index,
            "speakerId": self.speaker_id,
        }


class TranscriptBuffer:
    """Accumulates final speech fragments between flushes."""

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH, started_at: Optional[datetime] = None):
        self.max_length = max_length
        self.started_at = started_at or datetime.now()
        self.accumulated_text = ""

    def append(self, fragment: str) -> None:
        """Append a fragment, separated from earlier text by one space."""
        fragment = fragment.strip()
        if not fragment:
            return
        if self.accumulated_text:
            self.accumulated_text += " " + fragment
        else:
            self.accumulated_text = fragment

    @property
    def length(self) -> int:
        return len(self.accumulated_text)

    @property
    def is_full(self) -> bool:
        """True once the text exceeds the safety threshold."""
        return self.length > self.max_length

    @property
    def is_empty(self) -> bool:
        return not self.accumulated_text.strip()


class ChunkScheduler:
    """Turns a stream of final fragments into indexed chunks.

    A flush timer is armed by the first fragment of each chunk. When it fires
    it posts a :class:`FlushDue` event rather than flushing directly, so the
    flush runs inside the owner's event loop.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        post: Callable[[Event], None],
        emit: Callable[[ChunkEvent], None],
        chunk_duration: float = DEFAULT_CHUNK_DURATION,
        max_length: int = DEFAULT_MAX_LENGTH,
        speaker_id: Optional[str] = None,
    ):
        self.chunk_duration = chunk_duration
        self.max_length = max_length
        self.speaker_id = speaker_id

        self._scheduler = scheduler
        self._post = post
        self._emit = emit

        self._session_id: Optional[str] = None
        self._buffer: Optional[TranscriptBuffer] = None
        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self._next_index = 0

    def begin(self, session_id: str) -> None:
        """Start chunking for a new session. Indices restart at 0."""
        self.cancel_timer()
        self._session_id = session_id
        self._buffer = None
        self._next_index = 0

    def add(self, fragment: str) -> Optional[ChunkEvent]:
        """Buffer a final fragment.

        Returns the chunk if the fragment pushed the buffer over its size
        limit and caused an immediate flush.
        """
        if self._session_id is None:
            raise RuntimeError("ChunkScheduler.add() called before begin()")
        if not fragment.strip():
            return None

        if self._buffer is None:
            self._buffer = TranscriptBuffer(self.max_length)
        self._buffer.append(fragment)

        if self._timer is None or not self._timer.active:
            self._arm_timer()

        if self._buffer.is_full:
            logger.debug(f"Buffer exceeded {self.max_length} chars, flushing early")
            return self.flush()
        return None

    def on_timer(self, generation: int) -> Optional[ChunkEvent]:
        """Handle a :class:`FlushDue` event."""
        if generation != self._generation:
            logger.debug("Ignoring stale flush timer")
            return None
        self._timer = None
        return self.flush()

    def flush(self) -> Optional[ChunkEvent]:
        """Package the buffer as a chunk and hand it off.

        Buffer and timer are reset before the hand-off so fragments that
        arrive meanwhile start a new chunk.
        """
        self.cancel_timer()
        buffer, self._buffer = self._buffer, None

        if buffer is None or buffer.is_empty or self._session_id is None:
            return None

        chunk = ChunkEvent(
            transcript=buffer.accumulated_text.strip(),
            timestamp=datetime.now(),
            session_id=self._session_id,
            chunk_index=self._next_index,
            speaker_id=self.speaker_id,
        )
        self._next_index += 1

        logger.info(
            f"Chunk {chunk.chunk_index} for session {chunk.session_id}: "
            f"{len(chunk.transcript)} chars"
        )
        self._emit(chunk)
        return chunk

    def cancel_timer(self) -> None:
        """Cancel the pending flush timer, keeping any buffered text."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1

    def end(self) -> Optional[ChunkEvent]:
        """Flush what is left and forget the session."""
        chunk = self.flush()
        self._session_id = None
        return chunk

    def _arm_timer(self) -> None:
        self._generation += 1
        generation = self._generation
        self._timer = self._scheduler.call_later(
            self.chunk_duration,
            lambda: self._post(FlushDue(generation=generation)),
        )
        logger.debug(f"Flush timer armed for {self.chunk_duration}s")

    @property
    def buffer(self) -> Optional[TranscriptBuffer]:
        return self._buffer

    @property
    def buffered_text(self) -> str:
        return self._buffer.accumulated_text if self._buffer else ""

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None and self._timer.active

    @property
    def next_index(self) -> int:
        return self._next_index
