#!/usr/bin/env python3
"""
resolver.py

Best-effort resolution of address batches.

Steps per batch:
  1) Serve addresses already in the SymbolCache.
  2) Look up the rest in the live perf map (overwrite policy unless the
     resolver was built with merge=True).
  3) Hand what is still missing to the external symbolizer. A failure here
     is logged and the affected addresses stay unresolved.
  4) Store every new result in the cache, including "" (no name).
  5) Return address -> symbol for all resolved addresses, in input order.

Unresolved addresses are simply absent from the result, and so are tokens
that are not "0x<hex>" addresses.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

from pprof_remote.errors import SymbolizerError
from pprof_remote.perf_map import is_address, perf_map_path, resolve_with_perf_map
from pprof_remote.symbol_cache import SymbolCache
from pprof_remote.symbolizers import Symbolizer

LOG = logging.getLogger("resolver")


class Resolver:
    """
    Combine cache, perf map and external symbolizer.

    The cache is passed in so that one instance can be shared by every
    Resolver in the process.
    """

    def __init__(
        self,
        cache: SymbolCache,
        symbolizer: Symbolizer,
        perf_map: Optional[Path] = None,
        merge: bool = False,
    ):
        self.cache = cache
        self.symbolizer = symbolizer
        self.perf_map = perf_map if perf_map is not None else perf_map_path()
        self.merge = merge

    def resolve(self, addresses: Sequence[str]) -> Dict[str, str]:
        # Anything but "0x<hex>" must never reach a symbolizer command line.
        invalid = [a for a in addresses if not is_address(a)]
        if invalid:
            LOG.warning("Ignoring %d tokens that are not addresses", len(invalid))
            addresses = [a for a in addresses if is_address(a)]

        hits, misses = self.cache.lookup(addresses)
        LOG.debug(
            "Resolving %d addresses: %d cached, %d new",
            len(addresses),
            len(hits),
            len(misses),
        )

        new_symbols: Dict[str, str] = {}
        if misses:
            perf = resolve_with_perf_map(misses, self.perf_map, merge=self.merge)
            new_symbols.update(perf.symbols)

            if perf.missing:
                try:
                    new_symbols.update(self.symbolizer.symbolize(perf.missing))
                except SymbolizerError as e:
                    LOG.warning("Cannot resolve %d symbols: %s", len(perf.missing), e)
                    if e.stderr:
                        LOG.debug("%s stderr: %s", e.tool, e.stderr)

            self.cache.update(new_symbols)

        result: Dict[str, str] = {}
        for address in addresses:
            if address in result:
                continue
            if address in hits:
                result[address] = hits[address]
            elif address in new_symbols:
                result[address] = new_symbols[address]
        return result


__all__ = [
    "Resolver",
]
