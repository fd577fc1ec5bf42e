"""Fire-and-forget hand-off of transcript chunks."""

import logging
import queue
import threading
from collections import deque
from typing import Optional

from ..capture.buffer import ChunkEvent
from ..exceptions import SessionRejectedError, SinkDeliveryError
from ..notify import Notice, NoticeLevel, Notifier
from .ingestion import IngestionClient

logger = logging.getLogger(__name__)

_STOP = object()


class TranscriptSink:
    """Delivers chunks to the ingestion service from a background thread.

    ``submit`` never blocks the caller. A chunk that fails to deliver is
    logged and dropped; it is not retried. At most ``max_pending`` chunks
    wait for delivery; beyond that new chunks are dropped. Only a rejected
    session is shown to the user, once per run of rejections.
    """

    def __init__(
        self,
        client: IngestionClient,
        notifier: Notifier,
        history_size: int = 50,
        max_pending: int = 500,
    ):
        self.client = client
        self._notifier = notifier
        self._queue: queue.Queue = queue.Queue(maxsize=max_pending)
        self._running = False
        self._thread: Optional[threading.Thread] = None

        self._stats_lock = threading.Lock()
        self.delivered = 0
        self.failed = 0
        self.dropped = 0
        self._recent: deque[dict] = deque(maxlen=history_size)
        self._rejection_notified = False

    def submit(self, chunk: ChunkEvent) -> None:
        """Queue a chunk for delivery, dropping it if the queue is full."""
        if not self._running:
            logger.warning(
                f"Sink not running, chunk {chunk.chunk_index} will be sent once started"
            )
        try:
            self._queue.put_nowait(chunk)
        except queue.Full:
            logger.error(
                f"Delivery queue full ({self._queue.maxsize}), chunk {chunk.chunk_index} dropped"
            )
            with self._stats_lock:
                self.dropped += 1

    def deliver(self, chunk: ChunkEvent) -> bool:
        """Send one chunk now. Returns True on success."""
        try:
            self.client.send(chunk)
        except SessionRejectedError as e:
            logger.error(f"Chunk {chunk.chunk_index} dropped: {e}")
            self._record(chunk, "rejected")
            if not self._rejection_notified:
                self._rejection_notified = True
                self._notifier.notify(Notice(
                    level=NoticeLevel.WARNING,
                    code="sink.session-rejected",
                    message=(
                        "Transcripts are not being saved: your sign-in or the "
                        "class session is no longer valid."
                    ),
                ))
            return False
        except SinkDeliveryError as e:
            logger.error(f"Chunk {chunk.chunk_index} dropped: {e}")
            self._record(chunk, "failed")
            return False
        except Exception as e:
            logger.error(f"Unexpected error delivering chunk {chunk.chunk_index}: {e}", exc_info=True)
            self._record(chunk, "failed")
            return False

        self._rejection_notified = False
        self._record(chunk, "delivered")
        return True

    def _record(self, chunk: ChunkEvent, outcome: str) -> None:
        with self._stats_lock:
            if outcome == "delivered":
                self.delivered += 1
            else:
                self.failed += 1
            self._recent.append({
                "session_id": chunk.session_id,
                "chunk_index": chunk.chunk_index,
                "chars": len(chunk.transcript),
                "timestamp": chunk.timestamp.isoformat(),
                "outcome": outcome,
            })

    def _delivery_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.deliver(item)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        """Start the delivery thread."""
        if self._running:
            logger.warning("Transcript sink already running")
            return

        self._running = True
        self._thread = threading.Thread(target=self._delivery_loop, daemon=True)
        self._thread.start()
        logger.info(f"Transcript sink started, delivering to {self.client.url}")

    def stop(self, timeout: float = 10.0) -> None:
        """Stop after everything already queued has been attempted."""
        if not self._running:
            return

        logger.info("Stopping transcript sink")
        self._running = False
        self._queue.put(_STOP)

        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Transcript sink did not drain before timeout")
            self._thread = None

        logger.info("Transcript sink stopped")

    def is_running(self) -> bool:
        return self._running

    def recent_deliveries(self, limit: int = 20) -> list[dict]:
        with self._stats_lock:
            items = list(self._recent)
        items.reverse()
        return items[:limit]

    def get_stats(self) -> dict:
        with self._stats_lock:
            return {
                "running": self._running,
                "pending": self._queue.qsize(),
                "delivered": self.delivered,
                "failed": self.failed,
                "dropped": self.dropped,
            }
