"""
pprof_remote

gperftools-compatible pprof remote endpoints and address symbolization.
"""

from pprof_remote.errors import ProfilerError, ProfilerUnavailable, SymbolizerError
from pprof_remote.interval_map import IntervalMap, SymbolInterval
from pprof_remote.resolver import Resolver
from pprof_remote.symbol_cache import SymbolCache

__version__ = "0.1.0"

__all__ = [
    "IntervalMap",
    "SymbolInterval",
    "Resolver",
    "SymbolCache",
    "SymbolizerError",
    "ProfilerError",
    "ProfilerUnavailable",
]
