"""Unit tests for the feature flag cache."""
import pytest

from app.services.feature_flags import (
    CacheState,
    FEATURE_FLAG_KEYS,
    FlagExistsError,
    FlagStore,
    create_flag,
    delete_flag,
    list_flags,
    update_flag,
)
from tests.conftest import FakeClock


class _FakeTable:
    """Stands in for the feature_flags table; can be switched offline."""

    def __init__(self, rows=None):
        self.rows = dict(rows or {})
        self.offline = False
        self.loads = 0

    def load(self):
        if self.offline:
            raise ConnectionError("database unavailable")
        self.loads += 1
        return dict(self.rows)


def _store(table, clock=None, ttl=60.0):
    return FlagStore(loader=table.load, ttl=ttl, clock=clock or FakeClock())


def test_unknown_key_is_false():
    store = _store(_FakeTable({"a": True}))
    assert store.get("does-not-exist") is False
    assert store.get("") is False


def test_cached_value_survives_until_ttl():
    """Flag flipped in storage at t=30s is only seen once the 60s TTL has passed."""
    clock = FakeClock()
    table = _FakeTable({FEATURE_FLAG_KEYS.SMART_MATCHING: True})
    store = _store(table, clock)

    assert store.get(FEATURE_FLAG_KEYS.SMART_MATCHING) is True

    clock.advance(30)
    table.rows[FEATURE_FLAG_KEYS.SMART_MATCHING] = False
    assert store.get(FEATURE_FLAG_KEYS.SMART_MATCHING) is True

    clock.advance(31)
    assert store.get(FEATURE_FLAG_KEYS.SMART_MATCHING) is False


def test_single_load_within_window():
    clock = FakeClock()
    table = _FakeTable({"a": True, "b": False})
    store = _store(table, clock)

    for _ in range(6):
        store.get("a")
        store.get_all()
        clock.advance(10)
    assert table.loads == 1

    # now at t=60: stale
    store.get("a")
    assert table.loads == 2


def test_reload_exactly_at_ttl():
    clock = FakeClock()
    table = _FakeTable({"a": True})
    store = _store(table, clock)
    store.get("a")

    clock.advance(60)
    table.rows["a"] = False
    assert store.get("a") is False


def test_invalidate_forces_reload_before_ttl():
    clock = FakeClock()
    table = _FakeTable({"a": False})
    store = _store(table, clock)
    assert store.get("a") is False

    table.rows["a"] = True
    clock.advance(5)
    store.invalidate()
    assert table.loads == 1  # lazy: nothing reloaded yet
    assert store.get("a") is True
    assert table.loads == 2


def test_invalidate_while_reloading_is_not_lost():
    """A write lands between the loader's read and the snapshot swap."""
    clock = FakeClock()
    table = _FakeTable({"a": False})

    def _load_then_concurrent_write():
        values = table.load()
        if table.loads == 1:
            table.rows["a"] = True
            store.invalidate()
        return values

    store = FlagStore(loader=_load_then_concurrent_write, ttl=60.0, clock=clock)

    assert store.get("a") is False  # the read that started before the write
    assert store.get("a") is True  # same instant, well within the TTL
    assert table.loads == 2


def test_storage_failure_serves_stale_values():
    clock = FakeClock()
    table = _FakeTable({"a": True})
    store = _store(table, clock)
    assert store.lookup("a").state is CacheState.FRESH

    clock.advance(120)
    table.offline = True
    result = store.lookup("a")
    assert result.value is True
    assert result.state is CacheState.STALE_FALLBACK


def test_storage_failure_before_first_load_defaults_to_false():
    table = _FakeTable({"a": True})
    table.offline = True
    store = _store(table)

    result = store.lookup("a")
    assert result.value is False
    assert result.state is CacheState.DEFAULT_EMPTY
    assert store.get_all() == {}


def test_failed_reload_is_retried_on_next_call():
    clock = FakeClock()
    table = _FakeTable({"a": True})
    store = _store(table, clock)
    store.get("a")

    clock.advance(61)
    table.offline = True
    table.rows["a"] = False
    assert store.get("a") is True

    table.offline = False
    assert store.get("a") is False


def test_stale_fallback_after_invalidate():
    table = _FakeTable({"a": True})
    store = _store(table)
    store.get("a")

    store.invalidate()
    table.offline = True
    result = store.lookup("a")
    assert (result.value, result.state) == (True, CacheState.STALE_FALLBACK)


def test_get_all_matches_individual_reads():
    clock = FakeClock()
    table = _FakeTable({"a": True, "b": False, "c": True})
    store = _store(table, clock)

    everything = store.get_all()
    assert everything == {"a": True, "b": False, "c": True}
    for key, value in everything.items():
        assert store.get(key) is value


def test_snapshot_is_never_mutated_by_reload():
    clock = FakeClock()
    table = _FakeTable({"a": True})
    store = _store(table, clock)

    before = store.snapshot()
    table.rows = {"a": False, "b": True}
    clock.advance(61)
    after = store.snapshot()

    assert dict(before.values) == {"a": True}
    assert dict(after.values) == {"a": False, "b": True}
    with pytest.raises(TypeError):
        before.values["a"] = False  # read-only view


def test_get_all_returns_a_copy():
    store = _store(_FakeTable({"a": True}))
    flags = store.get_all()
    flags["a"] = False
    assert store.get("a") is True


# ── Admin management against the database ──

def test_crud_invalidates_cache(db, flag_store, clock):
    assert flag_store.get(FEATURE_FLAG_KEYS.MAINTENANCE_MODE) is False

    flag = create_flag(db, key=FEATURE_FLAG_KEYS.MAINTENANCE_MODE, value=True,
                       category="system", store=flag_store)
    assert flag_store.get(FEATURE_FLAG_KEYS.MAINTENANCE_MODE) is True

    update_flag(db, flag, {"value": False}, store=flag_store)
    assert flag_store.get(FEATURE_FLAG_KEYS.MAINTENANCE_MODE) is False

    update_flag(db, flag, {"value": True}, store=flag_store)
    delete_flag(db, flag, store=flag_store)
    assert flag_store.get(FEATURE_FLAG_KEYS.MAINTENANCE_MODE) is False


def test_create_duplicate_key_rejected(db, flag_store):
    create_flag(db, key="dup", value=True, store=flag_store)
    with pytest.raises(FlagExistsError):
        create_flag(db, key="dup", value=False, store=flag_store)


def test_list_flags_by_category(db, flag_store):
    create_flag(db, key="b", value=True, category="billing", store=flag_store)
    create_flag(db, key="a", value=False, category="billing", store=flag_store)
    create_flag(db, key="c", value=True, category="auth", store=flag_store)

    assert [f.key for f in list_flags(db, category="billing")] == ["a", "b"]
    assert [f.key for f in list_flags(db)] == ["c", "a", "b"]
