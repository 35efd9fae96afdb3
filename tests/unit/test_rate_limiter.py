"""Tests for the per-user message cooldown."""

from glados.discord.rate_limiter import RATE_LIMIT_WARNING, RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestRateLimiter:
    def test_first_message_allowed(self) -> None:
        limiter = RateLimiter(clock=FakeClock())
        assert limiter.check(1) == (True, None)

    def test_second_message_inside_cooldown_refused_with_warning(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(cooldown_seconds=3.0, clock=clock)
        limiter.check(1)

        clock.now += 1.0
        assert limiter.check(1) == (False, RATE_LIMIT_WARNING)

    def test_warning_not_repeated_inside_warning_cooldown(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(cooldown_seconds=3.0, warning_cooldown=30.0, clock=clock)
        limiter.check(1)
        clock.now += 0.5
        limiter.check(1)

        clock.now += 0.5
        assert limiter.check(1) == (False, None)

    def test_allowed_again_after_cooldown(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(cooldown_seconds=3.0, clock=clock)
        limiter.check(1)

        clock.now += 3.0
        assert limiter.check(1) == (True, None)

    def test_refusal_does_not_extend_cooldown(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(cooldown_seconds=3.0, clock=clock)
        limiter.check(1)
        clock.now += 2.0
        limiter.check(1)

        clock.now += 1.0
        assert limiter.check(1) == (True, None)

    def test_users_are_independent(self) -> None:
        limiter = RateLimiter(clock=FakeClock())
        limiter.check(1)
        assert limiter.check(2) == (True, None)

    def test_remaining(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(cooldown_seconds=3.0, clock=clock)
        assert limiter.remaining(1) == 0.0

        limiter.check(1)
        clock.now += 1.0
        assert limiter.remaining(1) == 2.0

    def test_idle_users_are_pruned(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(
            cooldown_seconds=3.0, warning_cooldown=30.0, prune_interval=300.0, clock=clock
        )
        limiter.check(1)
        limiter.check(2)
        assert len(limiter) == 2

        clock.now += 301.0
        limiter.check(3)

        assert len(limiter) == 1
