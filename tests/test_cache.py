import os
import threading
import time

import pytest

from tp_analytics.storage.cache import ActivityFileCache


def _make_cache(tmp_path, max_bytes=1024):
    return ActivityFileCache(cache_dir=str(tmp_path / "fit"), max_bytes=max_bytes)


def test_get_miss_returns_none(tmp_path):
    cache = _make_cache(tmp_path)
    assert cache.get(1) is None
    # Directory is only created on first write
    assert not (tmp_path / "fit").exists()


def test_set_then_get_roundtrips_bytes(tmp_path):
    cache = _make_cache(tmp_path)
    cache.set(42, b"abc")
    assert cache.get(42) == b"abc"
    assert (tmp_path / "fit" / "42.fit").read_bytes() == b"abc"
    assert 42 in cache
    assert len(cache) == 1


def test_set_replaces_existing_entry_size(tmp_path):
    cache = _make_cache(tmp_path)
    cache.set(1, b"x" * 100)
    cache.set(1, b"y" * 10)
    stats = cache.stats()
    assert stats.entry_count == 1
    assert stats.total_bytes == 10
    assert cache.get(1) == b"y" * 10


def test_recently_read_entry_survives_eviction(tmp_path):
    cache = _make_cache(tmp_path, max_bytes=1024)
    cache.set(1, b"a" * 400)
    cache.set(2, b"b" * 400)
    assert cache.get(1) is not None
    cache.set(3, b"c" * 400)

    assert 1 in cache
    assert 2 not in cache
    assert 3 in cache
    assert not (tmp_path / "fit" / "2.fit").exists()
    assert cache.stats().total_bytes == 800


def test_eviction_stops_once_within_budget(tmp_path):
    cache = _make_cache(tmp_path, max_bytes=1000)
    for wid in range(1, 6):
        cache.set(wid, b"z" * 300)
    stats = cache.stats()
    assert stats.total_bytes <= 1000
    assert stats.entry_count == 3
    assert [wid for wid in range(1, 6) if wid in cache] == [3, 4, 5]


def test_vanished_file_is_a_miss_and_heals_index(tmp_path):
    cache = _make_cache(tmp_path)
    cache.set(7, b"data")
    os.remove(tmp_path / "fit" / "7.fit")

    assert cache.get(7) is None
    assert 7 not in cache
    assert cache.stats().total_bytes == 0


def test_startup_scan_rebuilds_index_from_directory(tmp_path):
    cache_dir = tmp_path / "fit"
    cache_dir.mkdir()
    (cache_dir / "10.fit").write_bytes(b"x" * 50)
    (cache_dir / "11.fit").write_bytes(b"y" * 70)
    (cache_dir / "notes.fit").write_bytes(b"ignored")
    (cache_dir / "12.txt").write_bytes(b"ignored")

    cache = ActivityFileCache(cache_dir=str(cache_dir), max_bytes=1024)
    stats = cache.stats()
    assert stats.entry_count == 2
    assert stats.total_bytes == 120
    assert cache.get(11) == b"y" * 70


def test_startup_order_follows_file_mtime(tmp_path):
    cache_dir = tmp_path / "fit"
    cache_dir.mkdir()
    (cache_dir / "1.fit").write_bytes(b"a" * 400)
    (cache_dir / "2.fit").write_bytes(b"b" * 400)
    os.utime(cache_dir / "1.fit", (2000, 2000))
    os.utime(cache_dir / "2.fit", (1000, 1000))

    cache = ActivityFileCache(cache_dir=str(cache_dir), max_bytes=1024)
    cache.set(3, b"c" * 400)

    assert 1 in cache
    assert 2 not in cache


def test_delete_and_clear(tmp_path):
    cache = _make_cache(tmp_path)
    cache.set(1, b"a" * 10)
    cache.set(2, b"b" * 20)

    assert cache.delete(1) is True
    assert cache.delete(1) is False
    assert not (tmp_path / "fit" / "1.fit").exists()

    result = cache.clear()
    assert result.count == 1
    assert result.bytes == 20
    assert len(cache) == 0
    assert list((tmp_path / "fit").glob("*.fit")) == []
    assert cache.get(1) is None
    assert cache.get(2) is None


def test_stats_reports_location_and_budget(tmp_path):
    cache = _make_cache(tmp_path, max_bytes=2048)
    stats = cache.stats().to_dict()
    assert stats == {
        "entry_count": 0,
        "total_bytes": 0,
        "max_bytes": 2048,
        "location": str(tmp_path / "fit"),
    }


def test_invalid_budget_rejected(tmp_path):
    with pytest.raises(ValueError):
        ActivityFileCache(cache_dir=str(tmp_path), max_bytes=0)


def test_defaults_come_from_config(tmp_path, monkeypatch):
    from tp_analytics.config import reset_config

    monkeypatch.setenv("TP_CACHE_DIR", str(tmp_path / "env-cache"))
    monkeypatch.setenv("TP_CACHE_MAX_BYTES", "4096")
    reset_config()

    cache = ActivityFileCache()
    assert cache.max_bytes == 4096
    assert cache.cache_dir == tmp_path / "env-cache"


def test_concurrent_sets_keep_index_and_disk_consistent(tmp_path):
    cache = _make_cache(tmp_path, max_bytes=5000)

    def writer(start):
        for wid in range(start, start + 20):
            cache.set(wid, b"q" * 250)

    threads = [threading.Thread(target=writer, args=(i * 100,)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stats = cache.stats()
    on_disk = list((tmp_path / "fit").glob("*.fit"))
    assert stats.total_bytes <= 5000
    assert stats.entry_count == len(on_disk) == 20
    assert stats.total_bytes == sum(p.stat().st_size for p in on_disk)


def test_set_racing_with_eviction_never_indexes_missing_file(tmp_path, monkeypatch):
    cache = _make_cache(tmp_path, max_bytes=1024)
    cache.set(1, b"a" * 400)
    cache.set(3, b"c" * 400)

    real_replace = os.replace
    racers = []

    def replace_then_race(src, dst):
        real_replace(src, dst)
        if not racers:
            # Another writer arrives while workout 1 is between rename and index update
            t = threading.Thread(target=cache.set, args=(2, b"b" * 400))
            racers.append(t)
            t.start()
            time.sleep(0.2)

    monkeypatch.setattr(os, "replace", replace_then_race)
    cache.set(1, b"A" * 400)
    racers[0].join()

    for wid in (1, 2, 3):
        if wid in cache:
            assert (tmp_path / "fit" / f"{wid}.fit").exists()
    assert 1 in cache and 2 in cache and 3 not in cache
    assert cache.get(1) == b"A" * 400
    on_disk = list((tmp_path / "fit").glob("*.fit"))
    assert cache.stats().total_bytes == sum(p.stat().st_size for p in on_disk) == 800
