import pytest

from botdesk.core.exceptions import RateLimitError
from botdesk.core.rate_limiter import RateLimiter, FixedWindowLimiter, RateLimitRule, classify_route


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


DEFAULT_RULES = {
    "api": {"window_ms": 60000, "max": 100},
    "chat": {"window_ms": 60000, "max": 30},
    "admin": {"window_ms": 60000, "max": 20},
    "upload": {"window_ms": 60000, "max": 10},
}


class TestFixedWindowLimiter:
    def test_allows_up_to_max(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter("chat", RateLimitRule(window_ms=60000, max=3), clock)

        assert limiter.hit("1.2.3.4") == (True, 2)
        assert limiter.hit("1.2.3.4") == (True, 1)
        assert limiter.hit("1.2.3.4") == (True, 0)
        assert limiter.hit("1.2.3.4") == (False, 0)

    def test_rejected_requests_do_not_consume_slots(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter("chat", RateLimitRule(window_ms=1000, max=1), clock)

        assert limiter.hit("a")[0] is True
        for _ in range(5):
            assert limiter.hit("a")[0] is False

        clock.advance(1.0)
        assert limiter.hit("a") == (True, 0)

    def test_window_resets_after_elapsed_time(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter("api", RateLimitRule(window_ms=60000, max=1), clock)

        assert limiter.hit("a")[0] is True
        clock.advance(59)
        assert limiter.hit("a")[0] is False
        clock.advance(1)
        assert limiter.hit("a")[0] is True

    def test_clients_are_counted_separately(self):
        limiter = FixedWindowLimiter("api", RateLimitRule(window_ms=60000, max=1), FakeClock())
        assert limiter.hit("a")[0] is True
        assert limiter.hit("b")[0] is True
        assert limiter.hit("a")[0] is False

    def test_expired_clients_are_forgotten(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter("api", RateLimitRule(window_ms=1000, max=5), clock)

        for n in range(10000):
            limiter.hit(f"10.0.{n // 256}.{n % 256}")
        assert len(limiter._states) == 10000

        clock.advance(1.0)
        assert limiter.hit("10.9.9.9") == (True, 4)
        assert list(limiter._states) == ["10.9.9.9"]

    def test_active_clients_keep_their_count_across_sweeps(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter("api", RateLimitRule(window_ms=1000, max=2), clock)

        limiter.hit("a")
        clock.advance(0.6)
        limiter.hit("b")
        clock.advance(0.6)

        # a's window is over and it is dropped; b is still inside its window
        assert limiter.hit("c") == (True, 1)
        assert set(limiter._states) == {"b", "c"}
        assert limiter.hit("b") == (True, 0)
        assert limiter.hit("b") == (False, 0)


class TestRateLimiter:
    def test_thirty_first_chat_request_is_rejected(self):
        limiter = RateLimiter(DEFAULT_RULES, clock=FakeClock())

        for _ in range(30):
            limiter.check("chat", "10.0.0.1")

        with pytest.raises(RateLimitError) as exc_info:
            limiter.check("chat", "10.0.0.1")

        assert exc_info.value.route_class == "chat"
        assert exc_info.value.retry_after_seconds == 60
        assert "chat requests" in exc_info.value.message

    def test_route_classes_are_independent(self):
        limiter = RateLimiter(DEFAULT_RULES, clock=FakeClock())
        for _ in range(20):
            limiter.check("admin", "10.0.0.1")

        with pytest.raises(RateLimitError):
            limiter.check("admin", "10.0.0.1")
        assert limiter.check("chat", "10.0.0.1") == 29

    def test_retry_after_rounds_up(self):
        limiter = RateLimiter({"upload": {"window_ms": 1500, "max": 1}}, clock=FakeClock())
        limiter.check("upload", "a")
        with pytest.raises(RateLimitError) as exc_info:
            limiter.check("upload", "a")
        assert exc_info.value.retry_after_seconds == 2

    def test_configure_replaces_rule_and_resets_counters(self):
        limiter = RateLimiter(DEFAULT_RULES, clock=FakeClock())
        limiter.check("chat", "a")

        limiter.configure({"chat": {"window_ms": 30000, "max": 2}})

        assert limiter.rules()["chat"] == {"window_ms": 30000, "max": 2}
        assert limiter.rules()["api"] == {"window_ms": 60000, "max": 100}
        assert limiter.check("chat", "a") == 1

    def test_unknown_route_class_is_ignored(self):
        limiter = RateLimiter({"bogus": {"window_ms": 1, "max": 1}}, clock=FakeClock())
        assert limiter.rules() == {}
        assert limiter.check("bogus", "a") == -1


class TestClassifyRoute:
    @pytest.mark.parametrize("method,path,expected", [
        ("POST", "/api/chat/1", "chat"),
        ("GET", "/api/admin/settings", "admin"),
        ("PUT", "/api/admin/settings", "admin"),
        ("POST", "/api/knowledge-base", "upload"),
        ("GET", "/api/knowledge-base/1", "api"),
        ("GET", "/api/chatbots", "api"),
        ("GET", "/api/models/gemini", "api"),
        ("GET", "/health", None),
        ("GET", "/api/system/health", None),
        ("GET", "/ws", None),
        ("GET", "/docs", None),
    ])
    def test_classification(self, method, path, expected):
        assert classify_route(method, path) == expected
