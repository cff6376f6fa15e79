#!/usr/bin/env python3
"""
config.py

Runtime settings and the command line options that populate them.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pprof_remote.perf_map import DEFAULT_PERF_MAP_DIR, perf_map_path
from pprof_remote.profiler import DEFAULT_PROFILER_LIB, DEFAULT_TCMALLOC_LIB
from pprof_remote.symbolizers import SYMBOLIZER_NAMES, default_executable

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_PROFILE_SECONDS = 30


@dataclass
class Settings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    perf_map_dir: str = DEFAULT_PERF_MAP_DIR
    merge_perf_map: bool = False
    symbolizer: str = "auto"
    executable: str = field(default_factory=default_executable)
    profiler_lib: str = DEFAULT_PROFILER_LIB
    tcmalloc_lib: str = DEFAULT_TCMALLOC_LIB
    default_profile_seconds: float = DEFAULT_PROFILE_SECONDS
    verbose: bool = False

    def perf_map_for(self, pid: Optional[int] = None) -> Path:
        return perf_map_path(pid, self.perf_map_dir)


def add_common_arguments(p: argparse.ArgumentParser) -> None:
    """Options shared by every sub-command."""
    p.add_argument(
        "--perf-map-dir",
        default=DEFAULT_PERF_MAP_DIR,
        help=f"Directory holding perf-<pid>.map files (default: {DEFAULT_PERF_MAP_DIR}).",
    )
    p.add_argument(
        "--merge-perf-map",
        action="store_true",
        help=(
            "Merge overlapping perf map entries instead of overwriting them. "
            "Use this when symbolizing profiles collected over a period of time."
        ),
    )
    p.add_argument(
        "--symbolizer",
        choices=SYMBOLIZER_NAMES,
        default="auto",
        help="External symbolizer (default: auto, atos on macOS, addr2line elsewhere).",
    )
    p.add_argument(
        "--executable",
        help="Binary passed to addr2line (default: the running Python interpreter).",
    )
    p.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )


def add_serve_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("--host", default=DEFAULT_HOST, help=f"Listen address (default: {DEFAULT_HOST}).")
    p.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Listen port (default: {DEFAULT_PORT}).")
    p.add_argument(
        "--profiler-lib",
        default=DEFAULT_PROFILER_LIB,
        help="gperftools CPU profiler library name or path (default: profiler).",
    )
    p.add_argument(
        "--tcmalloc-lib",
        default=DEFAULT_TCMALLOC_LIB,
        help="gperftools tcmalloc library name or path (default: tcmalloc).",
    )
    p.add_argument(
        "--profile-seconds",
        type=float,
        default=DEFAULT_PROFILE_SECONDS,
        help=f"CPU profile duration when the request does not say (default: {DEFAULT_PROFILE_SECONDS}).",
    )


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Build Settings from parsed arguments; options not present keep defaults."""
    settings = Settings(
        perf_map_dir=args.perf_map_dir,
        merge_perf_map=args.merge_perf_map,
        symbolizer=args.symbolizer,
        verbose=args.verbose,
    )
    if args.executable:
        settings.executable = args.executable
    if hasattr(args, "host"):
        settings.host = args.host
        settings.port = args.port
        settings.profiler_lib = args.profiler_lib
        settings.tcmalloc_lib = args.tcmalloc_lib
        settings.default_profile_seconds = args.profile_seconds
    return settings


__all__ = [
    "Settings",
    "add_common_arguments",
    "add_serve_arguments",
    "settings_from_args",
]
