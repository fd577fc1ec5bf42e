"""Capped exponential backoff for speech engine restarts."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .events import Event, RestartDue
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestartPolicy:
    """Backoff constants."""
    base_delay: float = 1.0
    max_delay: float = 10.0
    max_attempts: int = 5

    def __post_init__(self):
        if self.base_delay <= 0 or self.max_delay < self.base_delay:
            raise ValueError("RestartPolicy requires 0 < base_delay <= max_delay")
        if self.max_attempts < 1:
            raise ValueError("RestartPolicy.max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Delay before restart number ``attempt`` (1-based)."""
        if attempt < 1:
            return self.base_delay
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)


class RestartController:
    """Owns the single pending engine restart.

    Restarts never give up. Once ``max_attempts`` restarts have been scheduled
    without a success in between, the next one waits ``max_delay`` as a
    cooldown and the attempt counter starts over.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        post: Callable[[Event], None],
        policy: Optional[RestartPolicy] = None,
    ):
        self.policy = policy or RestartPolicy()
        self._scheduler = scheduler
        self._post = post
        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self.attempts = 0
        self.cooldowns = 0
        self.last_delay: Optional[float] = None

    def schedule(self, reason: str = "") -> Optional[float]:
        """Schedule a restart and return its delay.

        Returns None when a restart is already pending; repeated failure
        signals for the same outage do not advance the backoff.
        """
        if self.pending:
            logger.debug(f"Restart already pending, ignoring ({reason})")
            return None

        if self.attempts >= self.policy.max_attempts:
            delay = self.policy.max_delay
            self.attempts = 0
            self.cooldowns += 1
            logger.warning(
                f"{self.policy.max_attempts} restarts without success, "
                f"cooling down for {delay:.1f}s"
            )
        else:
            self.attempts += 1
            delay = self.policy.delay_for(self.attempts)
            logger.info(
                f"Restarting speech engine in {delay:.1f}s "
                f"(attempt {self.attempts}{', ' + reason if reason else ''})"
            )

        self._generation += 1
        generation = self._generation
        self._timer = self._scheduler.call_later(
            delay, lambda: self._post(RestartDue(generation=generation))
        )
        self.last_delay = delay
        return delay

    def claim(self, generation: int) -> bool:
        """Accept a :class:`RestartDue` event if it belongs to the live timer."""
        if generation != self._generation or self._timer is None:
            return False
        self._timer = None
        return True

    def cancel(self) -> None:
        """Cancel any pending restart."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.debug("Pending restart cancelled")
        self._generation += 1

    def reset(self) -> None:
        """Forget past failures after the engine proved healthy."""
        self.attempts = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None and self._timer.active
