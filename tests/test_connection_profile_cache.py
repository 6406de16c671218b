from __future__ import annotations

import pytest

from app.services.connection_profile_cache import ConnectionProfileReadCache


class _Loader:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


def test_second_read_is_served_from_cache() -> None:
    cache = ConnectionProfileReadCache(maxsize=4, ttl=60)
    loader = _Loader(["snapshot"])

    assert cache.get_or_load(("list",), loader) == (["snapshot"], "database")
    assert cache.get_or_load(("list",), loader) == (["snapshot"], "cache")
    assert loader.calls == 1


def test_skip_cache_reloads_and_refreshes_entry() -> None:
    cache = ConnectionProfileReadCache(maxsize=4, ttl=60)
    cache.get_or_load(("list",), _Loader("old"))

    value, source = cache.get_or_load(("list",), _Loader("new"), skip_cache=True)

    assert (value, source) == ("new", "database-forced")
    assert cache.get_or_load(("list",), _Loader("unused")) == ("new", "cache")


def test_disabled_cache_always_loads() -> None:
    cache = ConnectionProfileReadCache(maxsize=4, ttl=60, enabled=False)
    loader = _Loader(1)

    cache.get_or_load("key", loader)
    _, source = cache.get_or_load("key", loader)

    assert source == "database"
    assert loader.calls == 2
    assert len(cache) == 0


def test_invalidate_drops_every_entry() -> None:
    cache = ConnectionProfileReadCache(maxsize=4, ttl=60)
    cache.get_or_load("a", _Loader(1))
    cache.get_or_load("b", _Loader(2))

    cache.invalidate()

    assert len(cache) == 0
    assert cache.get_or_load("a", _Loader(3)) == (3, "database")


def test_loader_errors_are_not_cached() -> None:
    cache = ConnectionProfileReadCache(maxsize=4, ttl=60)

    def failing():
        raise LookupError("missing")

    with pytest.raises(LookupError):
        cache.get_or_load("missing", failing)

    assert len(cache) == 0


def test_oldest_entries_are_evicted_past_maxsize() -> None:
    cache = ConnectionProfileReadCache(maxsize=2, ttl=60)
    for key in ("a", "b", "c"):
        cache.get_or_load(key, _Loader(key))

    assert len(cache) == 2
