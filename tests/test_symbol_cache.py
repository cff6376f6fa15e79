"""Tests for the shared resolution cache."""

import threading

from pprof_remote.symbol_cache import SymbolCache


def test_lookup_splits_hits_and_misses() -> None:
    """Verify hits and misses, including empty-string entries."""
    cache = SymbolCache()
    cache.update({"0x1": "main", "0x2": ""})

    hits, misses = cache.lookup(["0x1", "0x2", "0x3"])
    assert hits == {"0x1": "main", "0x2": ""}
    assert misses == ["0x3"]
    assert "0x2" in cache
    assert cache.get("0x3") is None


def test_lookup_collapses_duplicates() -> None:
    """Verify that duplicate addresses are reported once."""
    cache = SymbolCache()
    cache.update({"0x1": "main"})
    hits, misses = cache.lookup(["0x1", "0x2", "0x1", "0x2"])
    assert hits == {"0x1": "main"}
    assert misses == ["0x2"]


def test_last_writer_wins() -> None:
    """Verify that updates overwrite earlier values."""
    cache = SymbolCache()
    cache.update({"0x1": ""})
    cache.update({"0x1": "main"})
    assert cache.snapshot() == {"0x1": "main"}
    assert len(cache) == 1


def test_concurrent_updates() -> None:
    """Verify that concurrent writers do not lose entries."""
    cache = SymbolCache()

    def writer(base: int) -> None:
        for i in range(500):
            cache.update({hex(base + i): f"sym{base + i}"})
            cache.lookup([hex(base + i), hex(i)])

    threads = [threading.Thread(target=writer, args=(n * 1000,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(cache) == 8 * 500
