#!/usr/bin/env python3
"""
cli.py

Command line entry point.

Sub-commands:
  serve      run the pprof remote HTTP endpoints
  resolve    resolve addresses once and print "address<TAB>symbol" lines
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from pprof_remote.config import (
    Settings,
    add_common_arguments,
    add_serve_arguments,
    settings_from_args,
)
from pprof_remote.resolver import Resolver
from pprof_remote.server import build_resolver, create_app
from pprof_remote.symbol_cache import SymbolCache
from pprof_remote.symbolizers import select_symbolizer

LOG = logging.getLogger("cli")


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------

def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="pprof-remote",
        description="pprof remote server endpoints and address symbolizer.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Serve /pprof endpoints over HTTP.")
    add_common_arguments(serve)
    add_serve_arguments(serve)

    resolve = sub.add_parser("resolve", help="Resolve addresses and print the result.")
    add_common_arguments(resolve)
    resolve.add_argument(
        "addresses",
        metavar="ADDR",
        nargs="+",
        help="Addresses to resolve, e.g. 0x7f12ab34.",
    )
    resolve.add_argument(
        "--pid",
        type=int,
        help="Use the perf map of this process instead of our own.",
    )
    return p


def run_resolve(settings: Settings, addresses: List[str], pid: Optional[int] = None) -> List[str]:
    """Resolve addresses and return the output lines."""
    if pid is None:
        resolver = build_resolver(settings)
    else:
        # Another process: atos needs its pid, addr2line still reads
        # settings.executable.
        resolver = Resolver(
            SymbolCache(),
            select_symbolizer(settings.symbolizer, executable=settings.executable, pid=pid),
            perf_map=settings.perf_map_for(pid),
            merge=settings.merge_perf_map,
        )

    resolved = resolver.resolve(addresses)
    missing = [a for a in addresses if a not in resolved]
    if missing:
        LOG.info("%d of %d addresses unresolved", len(missing), len(addresses))
    return [f"{address}\t{name}" for address, name in resolved.items()]


def run_serve(settings: Settings) -> None:
    app = create_app(settings)
    LOG.info("Serving /pprof on %s:%d", settings.host, settings.port)
    app.run(host=settings.host, port=settings.port, threaded=True)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    args = build_argparser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    settings = settings_from_args(args)

    if args.command == "resolve":
        for line in run_resolve(settings, args.addresses, pid=args.pid):
            print(line)
        return 0

    run_serve(settings)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
