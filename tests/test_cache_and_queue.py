from concurrent.futures import Executor

import pytest

from curator.core.config import get_settings
from curator.services.cache import MemoryStorage, TTLCache
from curator.services.regeneration import InlineExecutor, RegenerationQueue


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class ManualExecutor(Executor):
    """Holds submitted work until the test runs it."""

    def __init__(self):
        self.submitted = []

    def submit(self, fn, /, *args, **kwargs):
        self.submitted.append((fn, args, kwargs))

    def run_all(self):
        while self.submitted:
            fn, args, kwargs = self.submitted.pop(0)
            fn(*args, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


def test_cache_expires_after_ttl(clock):
    cache = TTLCache(clock=clock, default_ttl=60)
    cache.set("tags", ["a"])

    clock.now += 59
    assert cache.get("tags") == ["a"]

    clock.now += 1
    assert cache.get("tags") is None


def test_cache_get_or_load_only_loads_on_miss(clock):
    cache = TTLCache(clock=clock, default_ttl=10)
    calls = []

    def _load():
        calls.append(1)
        return ["x"]

    assert cache.get_or_load("categories", _load) == ["x"]
    assert cache.get_or_load("categories", _load) == ["x"]
    assert len(calls) == 1

    clock.now += 10
    cache.get_or_load("categories", _load)
    assert len(calls) == 2


def test_cache_invalidate_and_custom_ttl(clock):
    storage = MemoryStorage()
    cache = TTLCache(storage=storage, clock=clock, default_ttl=100)
    cache.set("tags", [1], ttl=5)
    clock.now += 6
    assert cache.get("tags") is None
    assert storage.get_raw("tags") is None

    cache.set("tags", [2])
    cache.invalidate("tags")
    assert cache.get("tags") is None


def test_cache_default_ttl_comes_from_settings(monkeypatch):
    monkeypatch.setenv("CACHE_TTL_SECONDS", "30")
    get_settings.cache_clear()
    assert TTLCache().default_ttl == 30


def test_inline_queue_runs_immediately():
    queue = RegenerationQueue(InlineExecutor())
    seen = []

    assert queue.submit(("u", 1), lambda: seen.append("run")) is True
    assert seen == ["run"]
    assert queue.is_busy(("u", 1)) is False


def test_queue_coalesces_triggers_while_running():
    executor = ManualExecutor()
    queue = RegenerationQueue(executor)
    runs = []
    key = ("user-1", 7)

    assert queue.submit(key, lambda: runs.append("first")) is True
    assert queue.is_busy(key)
    assert queue.submit(key, lambda: runs.append("second")) is False
    assert queue.submit(key, lambda: runs.append("third")) is False
    assert len(executor.submitted) == 1

    executor.run_all()
    assert runs == ["first", "third"]
    assert queue.is_busy(key) is False


def test_queue_keys_are_independent():
    executor = ManualExecutor()
    queue = RegenerationQueue(executor)

    assert queue.submit(("u", 1), lambda: None) is True
    assert queue.submit(("u", 2), lambda: None) is True
    assert len(executor.submitted) == 2


def test_failed_job_releases_key(caplog):
    queue = RegenerationQueue(InlineExecutor())

    def _boom():
        raise RuntimeError("database unavailable")

    queue.submit(("u", 1), _boom)
    assert "database unavailable" in caplog.text
    assert queue.is_busy(("u", 1)) is False

    ran = []
    assert queue.submit(("u", 1), lambda: ran.append(True)) is True
    assert ran == [True]


def test_follow_up_runs_after_failure():
    executor = ManualExecutor()
    queue = RegenerationQueue(executor)
    runs = []

    def _boom():
        raise ValueError("bad row")

    queue.submit("k", _boom)
    queue.submit("k", lambda: runs.append("retry"))
    executor.run_all()
    assert runs == ["retry"]


class FlakyExecutor(Executor):
    """Refuses the first submission, then runs work inline."""

    def __init__(self):
        self.refused = False

    def submit(self, fn, /, *args, **kwargs):
        if not self.refused:
            self.refused = True
            raise RuntimeError("cannot schedule new futures after shutdown")
        fn(*args, **kwargs)


def test_rejected_submit_releases_key():
    queue = RegenerationQueue(FlakyExecutor())
    runs = []

    with pytest.raises(RuntimeError):
        queue.submit(("u", 1), lambda: runs.append("lost"))
    assert queue.is_busy(("u", 1)) is False

    assert queue.submit(("u", 1), lambda: runs.append("next")) is True
    assert runs == ["next"]
