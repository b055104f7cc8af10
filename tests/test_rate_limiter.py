import threading

from ballotcore.services.rate_limiter import RateLimitConfig, RateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_allows_up_to_max_then_blocks():
    clock = FakeClock()
    rl = RateLimiter(clock=clock)
    cfg = RateLimitConfig(window_s=60, max_requests=3)

    decisions = [rl.check("1.2.3.4", cfg) for _ in range(3)]
    assert [d.allowed for d in decisions] == [True, True, True]
    assert [d.remaining for d in decisions] == [2, 1, 0]

    clock.advance(15)
    blocked = rl.check("1.2.3.4", cfg)
    assert blocked.allowed is False
    assert blocked.remaining == 0
    assert blocked.retry_after == 45


def test_window_resets_after_expiry():
    clock = FakeClock()
    rl = RateLimiter(clock=clock)
    cfg = RateLimitConfig(window_s=10, max_requests=1)

    assert rl.check("a", cfg).allowed
    assert not rl.check("a", cfg).allowed

    clock.advance(10)
    again = rl.check("a", cfg)
    assert again.allowed
    assert again.remaining == 0


def test_identifiers_are_counted_separately():
    rl = RateLimiter(clock=FakeClock())
    cfg = RateLimitConfig(window_s=60, max_requests=1)

    assert rl.check("verify:a", cfg).allowed
    assert rl.check("verify:b", cfg).allowed
    assert rl.check("submit:a", cfg).allowed
    assert not rl.check("verify:a", cfg).allowed


def test_retry_after_is_at_least_one_second():
    clock = FakeClock()
    rl = RateLimiter(clock=clock)
    cfg = RateLimitConfig(window_s=1, max_requests=1)

    rl.check("a", cfg)
    clock.advance(0.99)
    blocked = rl.check("a", cfg)
    assert not blocked.allowed
    assert blocked.retry_after == 1


def test_sweep_drops_only_expired_windows():
    clock = FakeClock()
    rl = RateLimiter(clock=clock, sweep_interval_s=3600)

    rl.check("short", RateLimitConfig(window_s=5, max_requests=10))
    rl.check("long", RateLimitConfig(window_s=500, max_requests=10))
    assert len(rl) == 2

    clock.advance(6)
    assert rl.sweep() == 1
    assert len(rl) == 1


def test_table_stays_bounded_when_over_max_entries():
    clock = FakeClock()
    rl = RateLimiter(clock=clock, max_entries=3, sweep_interval_s=3600)
    cfg = RateLimitConfig(window_s=1, max_requests=10)

    for ident in ("a", "b", "c", "d"):
        rl.check(ident, cfg)
    assert len(rl) == 4

    clock.advance(2)
    rl.check("e", cfg)
    assert len(rl) == 1


def test_periodic_sweep_runs_on_interval():
    clock = FakeClock()
    rl = RateLimiter(clock=clock, sweep_interval_s=30)
    cfg = RateLimitConfig(window_s=1, max_requests=10)

    for ident in ("a", "b", "c"):
        rl.check(ident, cfg)

    clock.advance(31)
    rl.check("d", cfg)
    assert len(rl) == 1


def test_concurrent_checks_count_exactly():
    rl = RateLimiter()
    cfg = RateLimitConfig(window_s=3600, max_requests=50)
    allowed = []
    lock = threading.Lock()
    start = threading.Barrier(20)

    def worker():
        start.wait()
        for _ in range(10):
            d = rl.check("shared", cfg)
            if d.allowed:
                with lock:
                    allowed.append(d.remaining)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(allowed) == 50
    assert sorted(allowed) == list(range(50))


def test_reset_clears_all_windows():
    rl = RateLimiter(clock=FakeClock())
    cfg = RateLimitConfig(window_s=60, max_requests=1)
    rl.check("a", cfg)
    rl.reset()
    assert len(rl) == 0
    assert rl.check("a", cfg).allowed
