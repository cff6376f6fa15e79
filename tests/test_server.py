"""Tests for the pprof remote HTTP endpoints."""

import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from pprof_remote.config import Settings
from pprof_remote.errors import ProfilerError, ProfilerUnavailable
from pprof_remote.profiler import ProfilerState
from pprof_remote.resolver import Resolver
from pprof_remote.server import create_app, parse_symbol_request
from pprof_remote.symbol_cache import SymbolCache
from pprof_remote.symbolizers import Symbolizer


class FakeSymbolizer(Symbolizer):
    name = "fake"

    def __init__(self, symbols: Dict[str, str]):
        self.symbols = symbols

    def symbolize(self, addresses: Sequence[str]) -> Dict[str, str]:
        return {a: self.symbols[a] for a in addresses if a in self.symbols}


class FakeProfiler:
    def __init__(self) -> None:
        self.enabled = False
        self.heap: Optional[Exception] = None
        self.start_ok = True
        self.started: List[str] = []
        self.stopped = 0

    def heap_profile(self) -> bytes:
        if self.heap is not None:
            raise self.heap
        return b"heap profile: 1: 2 [3: 4] @ heapprofile\n"

    def heap_growth_stacks(self) -> bytes:
        raise ProfilerUnavailable("no growth stacks")

    def state(self) -> ProfilerState:
        return ProfilerState(
            enabled=self.enabled,
            start_time=None,
            profile_name="/tmp/other.prof" if self.enabled else "",
            samples_gathered=12 if self.enabled else 0,
        )

    def start(self, path: str) -> bool:
        self.started.append(path)
        if self.start_ok:
            Path(path).write_bytes(b"\x00cpu-profile")
        return self.start_ok

    def stop(self) -> None:
        self.stopped += 1


@pytest.fixture
def profiler() -> FakeProfiler:
    return FakeProfiler()


@pytest.fixture
def client(tmp_path: Path, profiler: FakeProfiler):
    perf_map = tmp_path / "perf-1.map"
    perf_map.write_text("1000 10 foo\n", encoding="utf-8")
    not_elf = tmp_path / "app.bin"
    not_elf.write_bytes(b"#!/bin/sh\n")

    settings = Settings(executable=str(not_elf), perf_map_dir=str(tmp_path))
    resolver = Resolver(SymbolCache(), FakeSymbolizer({"0xdead": "main", "0xbeef": ""}), perf_map=perf_map)
    app = create_app(settings, profiler=profiler, resolver=resolver)
    app.config["TESTING"] = True
    return app.test_client()


def test_parse_symbol_request() -> None:
    """Verify splitting of the '+'-joined address list."""
    assert parse_symbol_request("0x1+0x2+0x3\n") == ["0x1", "0x2", "0x3"]
    assert parse_symbol_request("") == []
    assert parse_symbol_request("0x1++0x2") == ["0x1", "0x2"]


def test_post_symbol(client) -> None:
    """Verify resolved addresses are returned, unresolved ones omitted."""
    resp = client.post("/pprof/symbol", data="0x1005+0xdead+0xbeef+0x4242")
    assert resp.status_code == 200
    assert resp.get_data(as_text=True).split("\n") == ["0x1005\tfoo", "0xdead\tmain", "0xbeef\t"]


def test_post_symbol_with_nul_byte(client) -> None:
    """Verify a NUL byte in the request does not break symbolization."""
    resp = client.post("/pprof/symbol", data=b"0x1+0x2\x00")
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == ""


def test_post_symbol_ignores_option_tokens(client) -> None:
    """Verify that tokens which are not addresses are left out of the answer."""
    resp = client.post("/pprof/symbol", data="0x1005+-e+/bin/ls+--help+0xdead")
    assert resp.status_code == 200
    assert resp.get_data(as_text=True).split("\n") == ["0x1005\tfoo", "0xdead\tmain"]


def test_post_symbolz_alias(client) -> None:
    """Verify the Go-style /symbolz route."""
    resp = client.post("/symbolz", data="0xdead")
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == "0xdead\tmain"


def test_get_symbol_count(client) -> None:
    """Verify the num_symbols probe falls back to 1 for non-ELF binaries."""
    resp = client.get("/pprof/symbol")
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == "num_symbols: 1"


def test_heap(client, profiler: FakeProfiler) -> None:
    """Verify heap profile passthrough and error mapping."""
    resp = client.get("/pprof/heap")
    assert resp.status_code == 200
    assert resp.data.startswith(b"heap profile:")

    profiler.heap = ProfilerError("Heap profiler is not running")
    resp = client.get("/pprof/heap")
    assert resp.status_code == 500
    assert b"not running" in resp.data

    profiler.heap = ProfilerUnavailable("Cannot find library tcmalloc")
    assert client.get("/pprof/heap").status_code == 501


def test_growth_unavailable(client) -> None:
    """Verify growth stacks report not implemented."""
    assert client.get("/pprof/growth").status_code == 501


@pytest.mark.parametrize("route", ["/pprof/pmuprofile", "/pprof/contention"])
def test_not_implemented(client, route: str) -> None:
    """Verify unsupported profiles answer 501."""
    resp = client.get(route)
    assert resp.status_code == 501
    assert resp.get_data(as_text=True) == "Not implemented"


def test_cmdline(client) -> None:
    """Verify the interpreter comes first, followed by its own argv."""
    resp = client.get("/pprof/cmdline")
    assert resp.status_code == 200
    assert resp.get_data(as_text=True).split("\n") == [sys.executable, *sys.orig_argv[1:]]


def test_profile(client, profiler: FakeProfiler) -> None:
    """Verify a CPU profile is captured, returned and cleaned up."""
    resp = client.get("/pprof/profile?seconds=0.01")
    assert resp.status_code == 200
    assert resp.data == b"\x00cpu-profile"
    assert profiler.stopped == 1
    assert len(profiler.started) == 1
    assert not os.path.exists(profiler.started[0])


def test_profile_already_running(client, profiler: FakeProfiler) -> None:
    """Verify a running profiler yields 409 without starting a new one."""
    profiler.enabled = True
    resp = client.get("/pprof/profile?seconds=1")
    assert resp.status_code == 409
    assert profiler.started == []


def test_profile_start_failure(client, profiler: FakeProfiler) -> None:
    """Verify a failed start yields 500 and leaves no temp file."""
    profiler.start_ok = False
    resp = client.get("/pprof/profile?seconds=0.01")
    assert resp.status_code == 500
    assert profiler.stopped == 0
    assert not os.path.exists(profiler.started[0])


@pytest.mark.parametrize("seconds", ["abc", "0", "-3"])
def test_profile_bad_seconds(client, profiler: FakeProfiler, seconds: str) -> None:
    """Verify invalid durations are rejected."""
    resp = client.get(f"/pprof/profile?seconds={seconds}")
    assert resp.status_code == 400
    assert profiler.started == []
