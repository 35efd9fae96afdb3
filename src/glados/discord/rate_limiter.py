"""Per-user message cooldown applied before anything reaches the agent."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

RATE_LIMIT_WARNING = "You're sending messages too quickly. Please wait a moment and try again."


@dataclass
class CooldownState:
    """Last accepted message and last warning for one user (monotonic seconds)."""

    last_accepted: float
    last_warning: float = float("-inf")


class RateLimiter:
    """Allow one message per user every ``cooldown_seconds``.

    A refused user is warned at most once every ``warning_cooldown`` seconds
    so a burst of messages does not turn into a burst of warnings.
    """

    def __init__(
        self,
        cooldown_seconds: float = 3.0,
        warning_cooldown: float = 30.0,
        prune_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cooldown = cooldown_seconds
        self._warning_cooldown = warning_cooldown
        self._prune_interval = prune_interval
        self._clock = clock
        self._states: dict[int, CooldownState] = {}
        self._last_prune = clock()

    def check(self, user_id: int) -> tuple[bool, str | None]:
        """Record an attempt by *user_id*.

        Returns:
            ``(allowed, warning)``. ``warning`` is only set on a refusal that
            should be answered.
        """
        now = self._clock()
        self._maybe_prune(now)

        state = self._states.get(user_id)
        if state is None:
            self._states[user_id] = CooldownState(last_accepted=now)
            return True, None

        if now - state.last_accepted >= self._cooldown:
            state.last_accepted = now
            return True, None

        if now - state.last_warning >= self._warning_cooldown:
            state.last_warning = now
            return False, RATE_LIMIT_WARNING
        return False, None

    def remaining(self, user_id: int) -> float:
        """Seconds until *user_id* may send again (0 when not limited)."""
        state = self._states.get(user_id)
        if state is None:
            return 0.0
        return max(0.0, self._cooldown - (self._clock() - state.last_accepted))

    def _maybe_prune(self, now: float) -> None:
        if now - self._last_prune < self._prune_interval:
            return
        self._last_prune = now
        horizon = max(self._cooldown, self._warning_cooldown)
        self._states = {
            user_id: state
            for user_id, state in self._states.items()
            if now - max(state.last_accepted, state.last_warning) < horizon
        }

    def __len__(self) -> int:
        return len(self._states)
