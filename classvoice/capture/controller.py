"""Capture state machine.

The controller owns one speech engine and at most one capture session. User
commands, engine callbacks and timer firings are all turned into events and
handled one at a time from a single mailbox:

    IDLE -> LISTENING <-> PAUSED -> STOPPED

Whichever thread submits an event while the mailbox is idle drains it.
Events submitted from inside a handler are queued and run after the current
handler returns, so every handler sees a consistent session.
"""

import logging
import threading
from collections import deque
from typing import Callable, Optional, Protocol

from ..config import Config
from ..notify import Notice, NoticeLevel, Notifier
from .backoff import RestartController, RestartPolicy
from .buffer import ChunkEvent, ChunkScheduler
from .errors import EngineErrorKind, Recovery, classify_engine_error
from .events import (
    EngineEnded,
    EngineFailed,
    EngineResult,
    EngineStarted,
    Event,
    FlushDue,
    PauseCommand,
    RestartDue,
    ResumeCommand,
    SilenceCheckDue,
    StartCommand,
    StopCommand,
)
from .scheduler import Scheduler, ThreadingScheduler
from .session import CaptureSession, CaptureState
from .silence import SilenceMonitor

logger = logging.getLogger(__name__)


class ChunkSink(Protocol):
    def submit(self, chunk: ChunkEvent) -> None: ...


class CaptureController:
    """Coordinates the engine, chunking, restarts and silence monitoring."""

    def __init__(
        self,
        engine,
        sink: ChunkSink,
        notifier: Notifier,
        scheduler: Optional[Scheduler] = None,
        config: Optional[Config] = None,
    ):
        config = config or Config()
        self.config = config
        self.allowed_roles = {r.strip().lower() for r in config.capture.allowed_roles}

        self._engine = engine
        self._sink = sink
        self._notifier = notifier
        self._scheduler = scheduler or ThreadingScheduler()

        self._lock = threading.RLock()
        self._mailbox: deque[Event] = deque()
        self._draining = False

        self._session: Optional[CaptureSession] = None
        self._state = CaptureState.IDLE

        self.chunker = ChunkScheduler(
            self._scheduler,
            self.post,
            self._hand_off,
            chunk_duration=config.capture.chunk_duration_s,
            max_length=config.capture.max_buffer_chars,
            speaker_id=config.capture.speaker_id,
        )
        self.restarts = RestartController(
            self._scheduler,
            self.post,
            RestartPolicy(
                base_delay=config.restart.base_delay_s,
                max_delay=config.restart.max_delay_s,
                max_attempts=config.restart.max_attempts,
            ),
        )
        self.silence = SilenceMonitor(
            self._scheduler,
            self.post,
            notifier,
            poll_interval=config.silence.poll_interval_s,
            notify_after=config.silence.notify_after_s,
            suggest_pause_after=config.silence.suggest_pause_after_s,
        )

        self._handlers: dict[type, Callable] = {
            StartCommand: self._handle_start,
            PauseCommand: self._handle_pause,
            ResumeCommand: self._handle_resume,
            StopCommand: self._handle_stop,
            EngineStarted: self._handle_engine_started,
            EngineResult: self._handle_engine_result,
            EngineFailed: self._handle_engine_failed,
            EngineEnded: self._handle_engine_ended,
            FlushDue: self._handle_flush_due,
            RestartDue: self._handle_restart_due,
            SilenceCheckDue: self._handle_silence_check,
        }

        engine.bind(self)

    # ==================== Public API ====================

    def start(self, session_id: str, role: str) -> bool:
        """Begin capturing for a session. Returns False if rejected."""
        return bool(self.post(StartCommand(session_id=session_id, role=role)).accepted)

    def pause(self) -> bool:
        return bool(self.post(PauseCommand()).accepted)

    def resume(self) -> bool:
        return bool(self.post(ResumeCommand()).accepted)

    def stop(self) -> bool:
        """Stop capture. Returns False when there was nothing to stop."""
        return bool(self.post(StopCommand()).accepted)

    def shutdown(self) -> None:
        """Stop capture and release timers."""
        self.stop()
        self._scheduler.shutdown()

    def post(self, event: Event) -> Event:
        """Submit an event and, unless already draining, process the mailbox."""
        with self._lock:
            self._mailbox.append(event)
            if self._draining:
                return event
            self._draining = True
            try:
                while self._mailbox:
                    self._dispatch(self._mailbox.popleft())
            finally:
                self._draining = False
        return event

    @property
    def state(self) -> CaptureState:
        with self._lock:
            return self._session.state if self._session else self._state

    @property
    def session(self) -> Optional[CaptureSession]:
        return self._session

    def status(self) -> dict:
        """Snapshot of the pipeline for display."""
        with self._lock:
            return {
                "state": self.state.value,
                "session": self._session.to_dict() if self._session else None,
                "buffered_chars": len(self.chunker.buffered_text),
                "next_chunk_index": self.chunker.next_index,
                "restart_pending": self.restarts.pending,
                "restart_attempts": self.restarts.attempts,
                "silence_monitor_active": self.silence.active,
                "engine": {
                    "name": self._engine.name,
                    "running": self._engine.is_running(),
                },
            }

    # ==================== Engine listener ====================

    def on_start(self) -> None:
        self.post(EngineStarted())

    def on_result(self, transcript: str, is_final: bool) -> None:
        self.post(EngineResult(text=transcript, is_final=is_final))

    def on_error(self, kind: "str | EngineErrorKind") -> None:
        self.post(EngineFailed(kind=EngineErrorKind.parse(kind)))

    def on_end(self) -> None:
        self.post(EngineEnded())

    # ==================== Event handling ====================

    def _dispatch(self, event: Event) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning(f"No handler for event {type(event).__name__}")
            return
        try:
            handler(event)
        except Exception as e:
            logger.error(f"Error handling {type(event).__name__}: {e}", exc_info=True)

    def _handle_start(self, cmd: StartCommand) -> None:
        role = (cmd.role or "").strip().lower()
        session_id = (cmd.session_id or "").strip()

        if role not in self.allowed_roles:
            logger.warning(f"Role '{cmd.role}' is not allowed to capture voice")
            cmd.accepted = False
            return
        if not session_id:
            logger.warning("Cannot start capture without a session id")
            cmd.accepted = False
            return
        if self._session is not None and self._session.active:
            logger.warning(
                f"Capture already active for session {self._session.session_id}"
            )
            cmd.accepted = False
            return

        self._session = CaptureSession(
            session_id=session_id,
            role=role,
            state=CaptureState.LISTENING,
            last_activity_at=self._scheduler.now(),
        )
        self._state = CaptureState.LISTENING
        self.restarts.cancel()
        self.restarts.reset()
        self.silence.reset()
        self.chunker.begin(session_id)

        logger.info(f"Capture started for session {session_id}")
        self._start_engine()
        cmd.accepted = True

    def _handle_pause(self, cmd: PauseCommand) -> None:
        session = self._session
        if session is None or session.state is not CaptureState.LISTENING:
            logger.warning("Pause ignored: capture is not listening")
            cmd.accepted = False
            return

        session.manually_paused = True
        session.state = CaptureState.PAUSED
        self.restarts.cancel()
        self.chunker.cancel_timer()
        self.silence.stop()
        self._stop_engine()

        logger.info(f"Capture paused for session {session.session_id}")
        cmd.accepted = True

    def _handle_resume(self, cmd: ResumeCommand) -> None:
        session = self._session
        if session is None or session.state is not CaptureState.PAUSED:
            logger.warning("Resume ignored: capture is not paused")
            cmd.accepted = False
            return

        session.manually_paused = False
        session.state = CaptureState.LISTENING
        session.last_activity_at = self._scheduler.now()
        self.restarts.cancel()
        self.restarts.reset()
        self._sync_attempts()

        logger.info(f"Capture resumed for session {session.session_id}")
        self._start_engine()
        cmd.accepted = True

    def _handle_stop(self, cmd: StopCommand) -> None:
        if self._session is None:
            logger.debug("Stop ignored: no active capture")
            cmd.accepted = False
            return
        self._teardown("stopped")
        cmd.accepted = True

    def _handle_engine_started(self, event: EngineStarted) -> None:
        session = self._session
        if session is None:
            return
        if session.state is CaptureState.PAUSED:
            # Late confirmation of a start that raced a pause.
            self._stop_engine()
            return
        if session.state is not CaptureState.LISTENING:
            return

        self.restarts.reset()
        self._sync_attempts()
        self.silence.start(session.last_activity_at)
        logger.info(f"Speech engine listening ({self._engine.name})")

    def _handle_engine_result(self, event: EngineResult) -> None:
        session = self._session
        if session is None or session.state is not CaptureState.LISTENING:
            return

        now = self._scheduler.now()
        session.last_activity_at = now
        self.silence.record_activity(now)
        self.restarts.reset()
        self._sync_attempts()

        if event.is_final and event.text.strip():
            self.chunker.add(event.text)

    def _handle_engine_failed(self, event: EngineFailed) -> None:
        kind = event.kind
        recovery = classify_engine_error(kind)
        session = self._session

        if recovery is Recovery.FATAL:
            logger.error(f"Speech engine error '{kind.value}' is fatal")
            if session is None:
                return
            self._notifier.notify(Notice(
                level=NoticeLevel.ERROR,
                code="capture.permission-denied",
                message=(
                    "Microphone access was denied. Allow microphone access "
                    "and start capture again."
                ),
            ))
            self._teardown(kind.value)
            return

        if recovery is Recovery.IGNORE:
            if session is not None:
                session.no_speech_count += 1
            logger.debug(f"Speech engine reported '{kind.value}'")
            return

        logger.warning(f"Speech engine error '{kind.value}'")
        if self._should_keep_listening():
            self._schedule_restart(kind.value)

    def _handle_engine_ended(self, event: EngineEnded) -> None:
        session = self._session
        if session is None:
            return
        if self._should_keep_listening():
            self._schedule_restart("engine ended")
        elif session.manually_paused:
            logger.debug("Speech engine ended while paused")
        else:
            self._teardown("engine ended")

    def _handle_flush_due(self, event: FlushDue) -> None:
        self.chunker.on_timer(event.generation)

    def _handle_restart_due(self, event: RestartDue) -> None:
        if not self.restarts.claim(event.generation):
            return
        if not self._should_keep_listening():
            return
        logger.info("Restarting speech engine")
        self._start_engine()

    def _handle_silence_check(self, event: SilenceCheckDue) -> None:
        session = self._session
        if session is None or session.state is not CaptureState.LISTENING:
            return
        self.silence.check(event.generation)

    # ==================== Helpers ====================

    def _should_keep_listening(self) -> bool:
        session = self._session
        return (
            session is not None
            and session.state is CaptureState.LISTENING
            and not session.manually_paused
        )

    def _start_engine(self) -> None:
        try:
            self._engine.start()
        except Exception as e:
            logger.warning(f"Speech engine failed to start: {e}")
            self._schedule_restart("start failed")

    def _stop_engine(self) -> None:
        try:
            self._engine.stop()
        except Exception as e:
            logger.warning(f"Error stopping speech engine: {e}")

    def _schedule_restart(self, reason: str) -> None:
        self.restarts.schedule(reason)
        self._sync_attempts()

    def _sync_attempts(self) -> None:
        if self._session is not None:
            self._session.restart_attempts = self.restarts.attempts

    def _hand_off(self, chunk: ChunkEvent) -> None:
        if self._session is not None:
            self._session.chunks_emitted += 1
        try:
            self._sink.submit(chunk)
        except Exception as e:
            logger.error(f"Failed to hand off chunk {chunk.chunk_index}: {e}")

    def _teardown(self, reason: str) -> None:
        session = self._session
        self.restarts.cancel()
        self.silence.reset()
        session.state = CaptureState.STOPPED
        self._state = CaptureState.STOPPED

        self.chunker.end()
        self._stop_engine()
        self.restarts.reset()

        logger.info(f"Capture stopped for session {session.session_id} ({reason})")
        self._session = None
