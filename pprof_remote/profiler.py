#!/usr/bin/env python3
"""
profiler.py

Thin ctypes binding to the gperftools C API.

The profile data itself is opaque to this project: the heap profile and
CPU profile bytes are passed through to the HTTP client unchanged.

Libraries are looked up lazily, on the first call that needs them, so that
importing this module (and serving the symbol endpoints) works on hosts
without gperftools installed.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from pprof_remote.errors import ProfilerError, ProfilerUnavailable

LOG = logging.getLogger("profiler")

DEFAULT_PROFILER_LIB = "profiler"
DEFAULT_TCMALLOC_LIB = "tcmalloc"


class _ProfilerStateStruct(ctypes.Structure):
    # struct ProfilerState from gperftools/profiler.h
    _fields_ = [
        ("enabled", ctypes.c_int),
        ("start_time", ctypes.c_long),
        ("profile_name", ctypes.c_char * 1024),
        ("samples_gathered", ctypes.c_int),
    ]


@dataclass
class ProfilerState:
    enabled: bool
    start_time: Optional[datetime]
    profile_name: str
    samples_gathered: int


class GperftoolsProfiler:
    """
    CPU profiler (libprofiler) and heap profiler (libtcmalloc) entry points.

    lib names are passed to ctypes.util.find_library(), so "profiler" finds
    libprofiler.so.0; a path to the shared object also works.
    """

    def __init__(
        self,
        profiler_lib: str = DEFAULT_PROFILER_LIB,
        tcmalloc_lib: str = DEFAULT_TCMALLOC_LIB,
    ):
        self.profiler_lib = profiler_lib
        self.tcmalloc_lib = tcmalloc_lib
        self._libs: Dict[str, ctypes.CDLL] = {}

    def _load(self, name: str) -> ctypes.CDLL:
        lib = self._libs.get(name)
        if lib is not None:
            return lib

        path = name if "/" in name else ctypes.util.find_library(name)
        if path is None:
            raise ProfilerUnavailable(f"Cannot find library {name}")
        try:
            lib = ctypes.CDLL(path)
        except OSError as e:
            raise ProfilerUnavailable(f"Cannot load {path}: {e}") from e

        LOG.info("Loaded %s", path)
        self._libs[name] = lib
        return lib

    def _function(self, lib_name: str, func_name: str):
        lib = self._load(lib_name)
        try:
            return getattr(lib, func_name)
        except AttributeError as e:
            raise ProfilerUnavailable(f"{func_name} not found in {lib_name}") from e

    # -- heap profiler ------------------------------------------------------

    def heap_profiler_running(self) -> bool:
        func = self._function(self.tcmalloc_lib, "IsHeapProfilerRunning")
        func.restype = ctypes.c_int
        func.argtypes = []
        return func() != 0

    def heap_profile(self) -> bytes:
        """Return the current heap profile (GetHeapProfile)."""
        if not self.heap_profiler_running():
            raise ProfilerError("Heap profiler is not running")

        get_heap_profile = self._function(self.tcmalloc_lib, "GetHeapProfile")
        get_heap_profile.restype = ctypes.c_void_p
        get_heap_profile.argtypes = []
        free = self._function(self.tcmalloc_lib, "free")
        free.restype = None
        free.argtypes = [ctypes.c_void_p]

        ptr = get_heap_profile()
        if not ptr:
            raise ProfilerError("Cannot get a heap profile")
        try:
            return ctypes.string_at(ptr)
        finally:
            free(ptr)

    def heap_growth_stacks(self) -> bytes:
        # MallocExtension::GetHeapGrowthStacks is C++ only; gperftools
        # exposes no C entry point for it.
        raise ProfilerUnavailable("Heap growth stacks are not available through the C API")

    # -- CPU profiler -------------------------------------------------------

    def state(self) -> ProfilerState:
        func = self._function(self.profiler_lib, "ProfilerGetCurrentState")
        func.restype = None
        func.argtypes = [ctypes.POINTER(_ProfilerStateStruct)]

        raw = _ProfilerStateStruct()
        func(ctypes.byref(raw))
        return ProfilerState(
            enabled=raw.enabled != 0,
            start_time=datetime.fromtimestamp(raw.start_time) if raw.start_time else None,
            profile_name=raw.profile_name.decode("utf-8", "replace"),
            samples_gathered=raw.samples_gathered,
        )

    def start(self, path: str) -> bool:
        if not path:
            raise ValueError("profile path must be a non-empty string")
        func = self._function(self.profiler_lib, "ProfilerStart")
        func.restype = ctypes.c_int
        func.argtypes = [ctypes.c_char_p]
        return func(path.encode("utf-8")) != 0

    def stop(self) -> None:
        func = self._function(self.profiler_lib, "ProfilerStop")
        func.restype = None
        func.argtypes = []
        func()


__all__ = [
    "DEFAULT_PROFILER_LIB",
    "DEFAULT_TCMALLOC_LIB",
    "ProfilerState",
    "GperftoolsProfiler",
]
