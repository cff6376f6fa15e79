#!/usr/bin/env python3
"""
interval_map.py

Sorted, conflict-resolved collection of symbol intervals.

Responsibilities:
  - Keep SymbolInterval objects ordered by start address.
  - Resolve conflicts on insert, either by overwriting an interval that
    starts at the same address (default) or by merging, i.e. dropping
    every interval that overlaps the new one.
  - Answer point lookups through a forward-only cursor.

The cursor requires its caller to query addresses in ascending order and
walks the interval list once per session, so N lookups against M intervals
cost O(N + M). Sorting the addresses is the caller's job.
"""

from __future__ import annotations

import logging
from bisect import bisect_left
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

LOG = logging.getLogger("interval_map")


@dataclass(frozen=True)
class SymbolInterval:
    """
    One mapped code region: [start, start + length).

    symbol may be empty, in which case location (if any) is used for display.
    """
    start: int
    length: int
    symbol: str
    location: Optional[str] = None

    @property
    def end(self) -> int:
        return self.start + self.length

    @property
    def display_name(self) -> Optional[str]:
        if self.symbol:
            return self.symbol
        if self.location:
            return self.location
        return None


def overlaps(a: SymbolInterval, b: SymbolInterval) -> bool:
    """
    Return True if a starts inside b, or a ends inside b.

    Both checks use b's half-open range [b.start, b.end).
    """
    if b.start <= a.start < b.end:
        return True
    if b.start <= a.end < b.end:
        return True
    return False


class LookupCursor:
    """
    Forward-only lookup session over an IntervalMap.

    Addresses passed to lookup() must be non-decreasing. The map must not
    be modified while a cursor is in use.
    """

    def __init__(self, intervals: List[SymbolInterval]):
        self._intervals = intervals
        self._index = 0
        self._last: Optional[int] = None

    def lookup(self, address: int) -> Optional[str]:
        """
        Return the display name of the interval strictly containing address
        (start < address < end), or None if no interval does.
        """
        if self._last is not None and address < self._last:
            raise ValueError(
                f"addresses must be queried in ascending order "
                f"(got {address:#x} after {self._last:#x})"
            )
        self._last = address

        intervals = self._intervals
        if not intervals:
            return None

        while self._index + 1 < len(intervals) and address > intervals[self._index + 1].start:
            self._index += 1

        candidate = intervals[self._index]
        if candidate.start < address < candidate.end:
            return candidate.display_name
        return None


class IntervalMap:
    """Ordered, non-overlapping (under merge) set of SymbolInterval."""

    def __init__(self) -> None:
        self._intervals: List[SymbolInterval] = []
        self._starts: List[int] = []

    def __len__(self) -> int:
        return len(self._intervals)

    def __iter__(self) -> Iterator[SymbolInterval]:
        return iter(list(self._intervals))

    def insert(self, interval: SymbolInterval, merge: bool = False) -> None:
        """
        Insert interval, resolving conflicts with existing intervals.

        merge=False (overwrite):
            An existing interval with the same start is replaced. Partially
            overlapping neighbours with a different start are kept.
        merge=True:
            Every existing interval that overlaps the new one (or shares its
            start) is removed first.
        """
        pos = bisect_left(self._starts, interval.start)

        if not merge:
            if pos < len(self._intervals) and self._intervals[pos].start == interval.start:
                old = self._intervals[pos]
                LOG.warning(
                    "Symbol %s moved over previous symbol %s at %#x, but not merging",
                    interval.symbol,
                    old.symbol,
                    interval.start,
                )
                self._intervals[pos] = interval
                return
            self._intervals.insert(pos, interval)
            self._starts.insert(pos, interval.start)
            return

        lo = pos
        while lo > 0 and self._intervals[lo - 1].end > interval.start:
            lo -= 1

        hi = pos
        while hi < len(self._intervals) and (
            self._intervals[hi].start == interval.start
            or overlaps(self._intervals[hi], interval)
        ):
            hi += 1

        for old in self._intervals[lo:hi]:
            LOG.info(
                "Symbol %s at %#x+%#x replaces overlapping %s at %#x+%#x",
                interval.symbol,
                interval.start,
                interval.length,
                old.symbol,
                old.start,
                old.length,
            )

        self._intervals[lo:hi] = [interval]
        self._starts[lo:hi] = [interval.start]

    def cursor(self) -> LookupCursor:
        """Start a new ascending-order lookup session."""
        return LookupCursor(self._intervals)

    def overlapping_pairs(self) -> List[Tuple[SymbolInterval, SymbolInterval]]:
        """
        Return all pairs of intervals whose ranges intersect.

        Always empty for a map built with merge=True; may be non-empty after
        overwrite inserts, which tolerate stale neighbours.
        """
        pairs: List[Tuple[SymbolInterval, SymbolInterval]] = []
        intervals = self._intervals
        for i, a in enumerate(intervals):
            j = i + 1
            while j < len(intervals) and intervals[j].start < a.end:
                pairs.append((a, intervals[j]))
                j += 1
        return pairs


__all__ = [
    "SymbolInterval",
    "IntervalMap",
    "LookupCursor",
    "overlaps",
]
