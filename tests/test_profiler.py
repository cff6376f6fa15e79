"""Tests for the gperftools binding when the libraries are absent."""

import pytest

from pprof_remote.errors import ProfilerUnavailable
from pprof_remote.profiler import GperftoolsProfiler


def test_missing_library_by_name() -> None:
    """Verify an unknown library name raises ProfilerUnavailable on use."""
    profiler = GperftoolsProfiler("no-such-profiler-lib-xyz", "no-such-tcmalloc-xyz")
    with pytest.raises(ProfilerUnavailable):
        profiler.state()
    with pytest.raises(ProfilerUnavailable):
        profiler.heap_profile()


def test_missing_library_by_path() -> None:
    """Verify an unloadable library path raises ProfilerUnavailable."""
    profiler = GperftoolsProfiler("/nonexistent/libprofiler.so.0")
    with pytest.raises(ProfilerUnavailable):
        profiler.start("/tmp/out.prof")


def test_growth_stacks_unavailable() -> None:
    """Verify growth stacks are never available through the C API."""
    with pytest.raises(ProfilerUnavailable):
        GperftoolsProfiler().heap_growth_stacks()


def test_start_requires_path() -> None:
    """Verify an empty profile path is rejected before touching the library."""
    with pytest.raises(ValueError):
        GperftoolsProfiler("no-such-profiler-lib-xyz").start("")
