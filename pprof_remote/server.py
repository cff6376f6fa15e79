#!/usr/bin/env python3
"""
server.py

Flask endpoints for the gperftools "pprof remote server" protocol, see
https://gperftools.github.io/gperftools/pprof_remote_servers.html

Routes (under /pprof):
  GET  /heap          heap profile
  GET  /growth        heap growth stacks
  GET  /profile       CPU profile over ?seconds=N
  GET  /pmuprofile    not implemented
  GET  /contention    not implemented
  GET  /cmdline       program command line
  GET  /symbol        "num_symbols: N"
  POST /symbol        resolve "0x1+0x2+..." into "addr<TAB>symbol" lines

/symbolz on the application root is an alias of /pprof/symbol, as used by
the Go pprof tool.
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
import time
from dataclasses import dataclass
from typing import List, Optional

from flask import Blueprint, Flask, Response, current_app, request

from pprof_remote.config import Settings
from pprof_remote.elf_symbols import num_symbols
from pprof_remote.errors import ProfilerError, ProfilerUnavailable
from pprof_remote.profiler import GperftoolsProfiler
from pprof_remote.resolver import Resolver
from pprof_remote.symbol_cache import SymbolCache
from pprof_remote.symbolizers import select_symbolizer

LOG = logging.getLogger("server")

EXTENSION_KEY = "pprof_remote"

bp = Blueprint("pprof", __name__)


@dataclass
class ServerState:
    settings: Settings
    resolver: Resolver
    profiler: GperftoolsProfiler


def _state() -> ServerState:
    return current_app.extensions[EXTENSION_KEY]


def _text(body, status: int = 200) -> Response:
    return Response(body, status=status, mimetype="text/plain")


def _profiler_error(what: str, e: ProfilerError) -> Response:
    LOG.warning("Cannot get %s: %s", what, e)
    if isinstance(e, ProfilerUnavailable):
        return _text("Not implemented", 501)
    return _text(str(e), 500)


@bp.route("/heap", methods=["GET"])
def heap() -> Response:
    try:
        return _text(_state().profiler.heap_profile())
    except ProfilerError as e:
        return _profiler_error("heap profile", e)


@bp.route("/growth", methods=["GET"])
def growth() -> Response:
    try:
        return _text(_state().profiler.heap_growth_stacks())
    except ProfilerError as e:
        return _profiler_error("growth profile", e)


def _profile_seconds(default: float) -> Optional[float]:
    raw = request.args.get("seconds")
    if raw is None:
        return default
    try:
        seconds = float(raw)
    except ValueError:
        return None
    if seconds <= 0:
        return None
    return seconds


@bp.route("/profile", methods=["GET"])
def profile() -> Response:
    state = _state()
    seconds = _profile_seconds(state.settings.default_profile_seconds)
    if seconds is None:
        return _text(f"Invalid seconds: {request.args.get('seconds')}", 400)

    profiler = state.profiler
    try:
        current = profiler.state()
    except ProfilerError as e:
        return _profiler_error("CPU profile", e)

    if current.enabled:
        LOG.warning(
            "Profiler already running since %s (%s, %d samples gathered)",
            current.start_time,
            current.profile_name,
            current.samples_gathered,
        )
        return _text(f"Profiler already running since {current.start_time}", 409)

    fd, path = tempfile.mkstemp(prefix="pprof-", suffix=".prof")
    os.close(fd)
    try:
        try:
            started = profiler.start(path)
        except ProfilerError as e:
            return _profiler_error("CPU profile", e)
        if not started:
            LOG.warning("Cannot start profiling")
            return _text("Cannot start profiling", 500)

        LOG.info("CPU profiling for %s seconds into %s", seconds, path)
        try:
            time.sleep(seconds)
        finally:
            profiler.stop()

        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            LOG.warning("Cannot read profile %s: %s", path, e)
            return _text(str(e), 500)
        return _text(data)
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


@bp.route("/pmuprofile", methods=["GET"])
@bp.route("/contention", methods=["GET"])
def not_implemented() -> Response:
    return _text("Not implemented", 501)


@bp.route("/cmdline", methods=["GET"])
def cmdline() -> Response:
    # Interpreter, its own options, then the script and its arguments.
    return _text("\n".join([sys.executable, *sys.orig_argv[1:]]))


def parse_symbol_request(body: str) -> List[str]:
    """Split a POST /symbol body ("0x1+0x2+...") into address tokens."""
    return [token for token in body.strip().split("+") if token]


@bp.route("/symbol", methods=["GET", "POST"])
def symbol() -> Response:
    state = _state()

    if request.method == "GET":
        # Only 0 vs. not 0 matters to pprof.
        return _text(f"num_symbols: {num_symbols(state.settings.executable)}")

    addresses = parse_symbol_request(request.get_data(as_text=True))
    resolved = state.resolver.resolve(addresses)
    LOG.debug("Resolved %d of %d addresses", len(resolved), len(addresses))
    return _text("\n".join(f"{address}\t{name}" for address, name in resolved.items()))


def build_resolver(settings: Settings, cache: Optional[SymbolCache] = None) -> Resolver:
    symbolizer = select_symbolizer(settings.symbolizer, executable=settings.executable)
    return Resolver(
        cache if cache is not None else SymbolCache(),
        symbolizer,
        perf_map=settings.perf_map_for(),
        merge=settings.merge_perf_map,
    )


def create_app(
    settings: Optional[Settings] = None,
    profiler: Optional[GperftoolsProfiler] = None,
    resolver: Optional[Resolver] = None,
) -> Flask:
    """
    Build the Flask application with the pprof blueprint under /pprof.

    profiler and resolver can be injected; by default they are created
    from settings.
    """
    if settings is None:
        settings = Settings()
    if profiler is None:
        profiler = GperftoolsProfiler(settings.profiler_lib, settings.tcmalloc_lib)
    if resolver is None:
        resolver = build_resolver(settings)

    app = Flask(__name__)
    app.extensions[EXTENSION_KEY] = ServerState(
        settings=settings,
        resolver=resolver,
        profiler=profiler,
    )
    app.register_blueprint(bp, url_prefix="/pprof")
    app.add_url_rule("/symbolz", endpoint="symbolz", view_func=symbol, methods=["GET", "POST"])
    return app


__all__ = [
    "bp",
    "ServerState",
    "parse_symbol_request",
    "build_resolver",
    "create_app",
]
