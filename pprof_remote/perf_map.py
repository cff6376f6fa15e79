#!/usr/bin/env python3
"""
perf_map.py

Loader for the live "perf map" symbol table a JIT runtime maintains at
/tmp/perf-<pid>.map, and the interval-map lookup built on top of it.

Line format:
    <start-hex> <length-hex> <symbol> [location]

The file can change between requests (code gets moved, regenerated or
dropped), so it is re-read for every resolution call and never cached.

Which insertion policy to use depends on the question being asked:
  - "what is at this address right now": overwrite (the default).
  - "what was at this address at some point during a profile taken over
    time": merge, since an address may have carried several symbols
    across the sampling window.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from pprof_remote.interval_map import IntervalMap, SymbolInterval

LOG = logging.getLogger("perf_map")

DEFAULT_PERF_MAP_DIR = "/tmp"

PERF_MAP_LINE_RE = re.compile(
    r"^(?P<start>[0-9a-fA-F]+) (?P<length>[0-9a-fA-F]+) (?P<symbol>[^ ]+)(?: (?P<location>.+))?$"
)

# Address tokens as sent by pprof: "0x" followed by hex digits.
ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]+\Z")


@dataclass
class PerfMapResult:
    """
    symbols:  address -> symbol for addresses found in the perf map.
    missing:  addresses the perf map could not resolve, to be handed to the
              next stage.
    """
    symbols: Dict[str, str] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)


def perf_map_path(pid: Optional[int] = None, directory: str = DEFAULT_PERF_MAP_DIR) -> Path:
    """Return the perf map path for pid (default: this process)."""
    if pid is None:
        pid = os.getpid()
    return Path(directory) / f"perf-{pid}.map"


def parse_address(address: str) -> Optional[int]:
    """
    Parse an "0x1234" address token. Returns None for anything else.
    """
    if not ADDRESS_RE.match(address):
        return None
    return int(address[2:], 16)


def is_address(token: str) -> bool:
    return ADDRESS_RE.match(token) is not None


def parse_perf_map_line(line: str) -> Optional[SymbolInterval]:
    m = PERF_MAP_LINE_RE.match(line.rstrip("\r\n"))
    if not m:
        return None
    return SymbolInterval(
        start=int(m.group("start"), 16),
        length=int(m.group("length"), 16),
        symbol=m.group("symbol"),
        location=m.group("location"),
    )


def load_perf_map(path: Path, merge: bool = False) -> Optional[IntervalMap]:
    """
    Read the perf map at path into a new IntervalMap.

    Returns None if the file does not exist (or cannot be read), which
    callers treat as "no interval data available". Malformed lines are
    skipped.
    """
    imap = IntervalMap()
    skipped = 0

    try:
        with path.open("r", encoding="utf-8", errors="replace") as f:
            for line in f:
                interval = parse_perf_map_line(line)
                if interval is None:
                    skipped += 1
                    continue
                imap.insert(interval, merge=merge)
    except FileNotFoundError:
        LOG.debug("No perf map at %s", path)
        return None
    except OSError as e:
        LOG.warning("Cannot read perf map %s: %s", path, e)
        return None

    LOG.debug(
        "Loaded %d intervals from %s (%d lines skipped, merge=%s)",
        len(imap),
        path,
        skipped,
        merge,
    )
    if not merge and LOG.isEnabledFor(logging.DEBUG):
        residual = imap.overlapping_pairs()
        if residual:
            LOG.debug("%d overlapping interval pairs left in %s", len(residual), path)
    return imap


def lookup_sorted(imap: IntervalMap, addresses: Sequence[str]) -> PerfMapResult:
    """
    Look up addresses in imap.

    Addresses are sorted numerically here, before the cursor scan, since the
    cursor only moves forward. Tokens that are not hex go to missing.
    """
    result = PerfMapResult()

    parsed: List[Tuple[int, str]] = []
    for address in addresses:
        value = parse_address(address)
        if value is None:
            result.missing.append(address)
        else:
            parsed.append((value, address))
    parsed.sort(key=lambda item: item[0])

    cursor = imap.cursor()
    for value, address in parsed:
        symbol = cursor.lookup(value)
        if symbol is None:
            result.missing.append(address)
        else:
            result.symbols[address] = symbol

    return result


def resolve_with_perf_map(
    addresses: Sequence[str],
    path: Path,
    merge: bool = False,
) -> PerfMapResult:
    """
    Resolve addresses against the perf map at path.

    If there is no perf map, every address is reported as missing.
    """
    if not addresses:
        return PerfMapResult()

    imap = load_perf_map(path, merge=merge)
    if imap is None:
        return PerfMapResult(missing=list(addresses))

    return lookup_sorted(imap, addresses)


__all__ = [
    "DEFAULT_PERF_MAP_DIR",
    "PerfMapResult",
    "perf_map_path",
    "ADDRESS_RE",
    "parse_address",
    "is_address",
    "parse_perf_map_line",
    "load_perf_map",
    "lookup_sorted",
    "resolve_with_perf_map",
]
