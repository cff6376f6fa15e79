#!/usr/bin/env python3
"""
symbol_cache.py

Process-lifetime cache of resolved addresses.

Key:   address string as received (e.g. "0x7f12ab34")
Value: symbol string; "" means the address was looked up and has no name.

Entries are never evicted: the set of addresses a process can report is
bounded by its own code, not by the number of requests. All access goes
through one lock, so the cache can be shared by concurrent requests.
"""

from __future__ import annotations

from threading import Lock
from typing import Dict, List, Mapping, Optional, Sequence, Tuple


class SymbolCache:
    def __init__(self) -> None:
        self._lock = Lock()
        self._symbols: Dict[str, str] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._symbols)

    def __contains__(self, address: object) -> bool:
        with self._lock:
            return address in self._symbols

    def get(self, address: str) -> Optional[str]:
        with self._lock:
            return self._symbols.get(address)

    def lookup(self, addresses: Sequence[str]) -> Tuple[Dict[str, str], List[str]]:
        """
        Split addresses into cached hits and misses.

        Duplicate addresses are reported once.
        """
        hits: Dict[str, str] = {}
        misses: List[str] = []
        seen = set()

        with self._lock:
            for address in addresses:
                if address in seen:
                    continue
                seen.add(address)
                symbol = self._symbols.get(address)
                if symbol is None:
                    misses.append(address)
                else:
                    hits[address] = symbol

        return hits, misses

    def update(self, symbols: Mapping[str, str]) -> None:
        """Store all entries; an existing entry is overwritten."""
        with self._lock:
            self._symbols.update(symbols)

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._symbols)


__all__ = [
    "SymbolCache",
]
