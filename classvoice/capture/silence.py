"""Advisory notices during long stretches without speech."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from ..notify import Notice, NoticeLevel, Notifier
from .events import Event, SilenceCheckDue
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class SilenceTier(str, Enum):
    NOTIFY = "notify"
    SUGGEST_PAUSE = "suggest-pause"


@dataclass
class SilenceState:
    """Inputs to the silence rate limiter."""
    last_activity_at: float
    notify_after: float = 120.0
    suggest_pause_after: float = 300.0
    last_notified_at: dict[SilenceTier, Optional[float]] = field(
        default_factory=lambda: {tier: None for tier in SilenceTier}
    )

    def threshold(self, tier: SilenceTier) -> float:
        if tier is SilenceTier.SUGGEST_PAUSE:
            return self.suggest_pause_after
        return self.notify_after

    def due_tiers(self, now: float) -> list[SilenceTier]:
        """Tiers that should fire at ``now``, mildest first.

        The tiers are independent: each one fires once silence exceeds its
        threshold and at least that threshold has passed since its own last
        notification.
        """
        elapsed = now - self.last_activity_at
        due = []
        for tier in (SilenceTier.NOTIFY, SilenceTier.SUGGEST_PAUSE):
            threshold = self.threshold(tier)
            if elapsed <= threshold:
                continue
            last = self.last_notified_at[tier]
            if last is not None and now - last < threshold:
                continue
            due.append(tier)
        return due


class SilenceMonitor:
    """Polls for inactivity while capture is listening.

    The monitor only posts notices. It never pauses or stops capture.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        post: Callable[[Event], None],
        notifier: Notifier,
        poll_interval: float = 30.0,
        notify_after: float = 120.0,
        suggest_pause_after: float = 300.0,
    ):
        self.poll_interval = poll_interval
        self.notify_after = notify_after
        self.suggest_pause_after = suggest_pause_after

        self._scheduler = scheduler
        self._post = post
        self._notifier = notifier
        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self.state: Optional[SilenceState] = None

    def start(self, last_activity_at: float) -> None:
        """Begin polling. Restarting keeps the per-tier rate limits."""
        previous = self.state.last_notified_at if self.state else None
        self.stop()
        self.state = SilenceState(
            last_activity_at=last_activity_at,
            notify_after=self.notify_after,
            suggest_pause_after=self.suggest_pause_after,
        )
        if previous is not None:
            self.state.last_notified_at.update(previous)
        self._arm()
        logger.debug(f"Silence monitor polling every {self.poll_interval}s")

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1

    def reset(self) -> None:
        """Stop polling and forget rate limit history."""
        self.stop()
        self.state = None

    def record_activity(self, now: float) -> None:
        if self.state is not None:
            self.state.last_activity_at = now

    def check(self, generation: int) -> list[Notice]:
        """Handle a :class:`SilenceCheckDue` event and return the notices posted."""
        if generation != self._generation or self.state is None:
            return []
        self._timer = None

        now = self._scheduler.now()
        notices = []
        for tier in self.state.due_tiers(now):
            self.state.last_notified_at[tier] = now
            notice = self._build_notice(tier, now - self.state.last_activity_at)
            self._notifier.notify(notice)
            notices.append(notice)

        self._arm()
        return notices

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.active

    def _arm(self) -> None:
        self._generation += 1
        generation = self._generation
        self._timer = self._scheduler.call_later(
            self.poll_interval, lambda: self._post(SilenceCheckDue(generation=generation))
        )

    @staticmethod
    def _build_notice(tier: SilenceTier, elapsed: float) -> Notice:
        minutes = int(elapsed // 60)
        if tier is SilenceTier.SUGGEST_PAUSE:
            return Notice(
                level=NoticeLevel.WARNING,
                code="silence.suggest-pause",
                message=(
                    f"No speech detected for {minutes} minutes. "
                    "Consider pausing capture if the class is on a break."
                ),
            )
        return Notice(
            level=NoticeLevel.INFO,
            code="silence.notify",
            message=f"No speech detected for {minutes} minutes. Capture is still listening.",
        )
