from datetime import datetime, timezone

from status_cache import StatusCache


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def fields(status="online", label="esp32"):
    return {
        "device_key": "ignored",
        "device_label": label,
        "status": status,
        "timestamp": None,
        "uptime": 12,
        "local_ip": "10.0.0.5",
        "resent": False,
    }


def make_cache(ttl=30.0):
    clock = FakeClock()
    wall = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return StatusCache(ttl=ttl, clock=clock, wall_clock=lambda: wall), clock


def test_get_within_ttl_returns_entry():
    cache, clock = make_cache()
    cache.put("dev-1", fields())
    clock.advance(29.9)

    entry = cache.get("dev-1")

    assert entry is not None
    assert entry.device_key == "dev-1"
    assert entry.status == "online"
    assert entry.received_at == "2026-01-01T00:00:00+00:00"
    assert entry.expires_at == "2026-01-01T00:00:30+00:00"


def test_expired_entry_is_not_found():
    cache, clock = make_cache()
    cache.put("dev-1", fields())
    clock.advance(30.0)

    assert cache.get("dev-1") is None
    assert len(cache) == 0


def test_unknown_key_is_not_found():
    cache, _ = make_cache()

    assert cache.get("nobody") is None


def test_last_write_wins_and_restarts_ttl():
    cache, clock = make_cache()
    cache.put("dev-1", fields(status="booting"))
    clock.advance(20)
    cache.put("dev-1", fields(status="online"))
    clock.advance(20)

    entry = cache.get("dev-1")
    assert entry.status == "online"
    assert len(cache) == 1


def test_live_skips_expired_entries_and_sweep_removes_them():
    cache, clock = make_cache(ttl=10)
    cache.put("old", fields())
    clock.advance(8)
    cache.put("new", fields())
    clock.advance(5)

    assert [e.device_key for e in cache.live()] == ["new"]
    assert cache.sweep() == 1
    assert len(cache) == 1
