#!/usr/bin/env python3
"""
symbolizers.py

External symbolizer tools used as the last resolution stage.

This module provides:

  - Symbolizer: base class with a uniform symbolize(addresses) interface.
  - Addr2lineSymbolizer: runs addr2line(1) on the running executable.
  - AtosSymbolizer: runs atos(1) against the running process (macOS).
  - NullSymbolizer: disables the external stage.
  - select_symbolizer(): picks one implementation for the host platform.

Every implementation invokes its tool once per batch with all addresses,
rather than spawning a process per address. A spawn failure or a non-zero
exit raises SymbolizerError; callers decide whether that is fatal.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import sys
from typing import Dict, List, Optional, Sequence

from pprof_remote.errors import SymbolizerError

LOG = logging.getLogger("symbolizers")

# addr2line prints "??" for an unknown function and "??:0" or "??:?" for an
# unknown location.
UNKNOWN_FUNCTION = "??"
UNKNOWN_LOCATIONS = ("??:0", "??:?")

# atos output, e.g.:
#   "main (in a.out) (main.c:12)"
#   "foo (in libfoo.dylib) + 24"
# or just the input address if nothing is known.
ATOS_LINE_RE = re.compile(r"(.+) \(in (.+)\) (\+ (\d+)|\(.+\))")


def default_executable() -> str:
    """Path of the binary running this process."""
    return os.path.realpath(sys.executable)


def run_tool(cmd: List[str]) -> str:
    """
    Run cmd and return its stdout.

    Raises SymbolizerError if the tool cannot be spawned (including argv
    that the OS rejects, e.g. embedded NUL bytes) or exits non-zero.
    stderr is only used for diagnostics.
    """
    tool = cmd[0]
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except (OSError, ValueError) as e:
        raise SymbolizerError(tool, f"Cannot run {tool}: {e}") from e

    if proc.returncode != 0:
        stderr = (proc.stderr or "").strip()
        raise SymbolizerError(
            tool,
            f"Cannot run {tool}: Returned {proc.returncode}",
            returncode=proc.returncode,
            stderr=stderr,
        )

    if proc.stderr:
        LOG.debug("%s stderr: %s", tool, proc.stderr.strip())
    return proc.stdout


class Symbolizer:
    """Translate addresses into symbol names using an external tool."""

    name = "symbolizer"

    def symbolize(self, addresses: Sequence[str]) -> Dict[str, str]:
        raise NotImplementedError


class Addr2lineSymbolizer(Symbolizer):
    """
    addr2line -C -f -s -e <executable> <addr>...

    Output is two lines per address: the function name (or "??"), then
    "file:line" (or "??:0" / "??:?").
    """

    name = "addr2line"

    def __init__(self, executable: Optional[str] = None, binary: str = "addr2line"):
        self.executable = executable or default_executable()
        self.binary = binary

    def command(self, addresses: Sequence[str]) -> List[str]:
        return [self.binary, "-C", "-f", "-s", "-e", self.executable, *addresses]

    def symbolize(self, addresses: Sequence[str]) -> Dict[str, str]:
        if not addresses:
            return {}
        output = run_tool(self.command(addresses))
        return parse_addr2line_output(addresses, output)


class AtosSymbolizer(Symbolizer):
    """
    atos -p <pid> <addr>...

    One output line per address.
    """

    name = "atos"

    def __init__(self, pid: Optional[int] = None, binary: str = "atos"):
        self.pid = os.getpid() if pid is None else pid
        self.binary = binary

    def command(self, addresses: Sequence[str]) -> List[str]:
        return [self.binary, "-p", str(self.pid), *addresses]

    def symbolize(self, addresses: Sequence[str]) -> Dict[str, str]:
        if not addresses:
            return {}
        output = run_tool(self.command(addresses))
        return parse_atos_output(addresses, output)


class NullSymbolizer(Symbolizer):
    """Always fails; used when the external stage is switched off."""

    name = "none"

    def symbolize(self, addresses: Sequence[str]) -> Dict[str, str]:
        raise SymbolizerError(self.name, "External symbolizer disabled")


def parse_addr2line_output(addresses: Sequence[str], output: str) -> Dict[str, str]:
    """
    Pair up addr2line output lines with addresses.

    Per address:
      - function known            -> function
      - "??" + known location     -> location
      - "??" + unknown location   -> "" (looked up, but has no name)

    Addresses without a complete pair of output lines are left out.
    """
    lines = output.splitlines()
    symbols: Dict[str, str] = {}

    for i, address in enumerate(addresses):
        if 2 * i + 1 >= len(lines):
            LOG.debug(
                "addr2line returned %d lines for %d addresses",
                len(lines),
                len(addresses),
            )
            break
        function = lines[2 * i].strip()
        location = lines[2 * i + 1].strip()

        if function == UNKNOWN_FUNCTION:
            symbol = "" if location in UNKNOWN_LOCATIONS else location
        else:
            symbol = function
        symbols[address] = symbol

    return symbols


def parse_atos_output(addresses: Sequence[str], output: str) -> Dict[str, str]:
    symbols: Dict[str, str] = {}
    for address, line in zip(addresses, output.splitlines()):
        m = ATOS_LINE_RE.match(line)
        symbols[address] = m.group(1) if m else line
    return symbols


SYMBOLIZER_NAMES = ("auto", "addr2line", "atos", "none")


def select_symbolizer(
    name: str = "auto",
    platform: Optional[str] = None,
    executable: Optional[str] = None,
    pid: Optional[int] = None,
) -> Symbolizer:
    """
    Pick the symbolizer implementation.

    "auto" chooses atos on macOS and addr2line everywhere else.
    """
    if name not in SYMBOLIZER_NAMES:
        raise ValueError(f"Unknown symbolizer: {name!r}")

    if name == "auto":
        if platform is None:
            platform = sys.platform
        name = "atos" if platform == "darwin" else "addr2line"

    if name == "atos":
        symbolizer: Symbolizer = AtosSymbolizer(pid=pid)
    elif name == "addr2line":
        symbolizer = Addr2lineSymbolizer(executable=executable)
    else:
        symbolizer = NullSymbolizer()

    LOG.debug("Using %s symbolizer", symbolizer.name)
    return symbolizer


__all__ = [
    "Symbolizer",
    "Addr2lineSymbolizer",
    "AtosSymbolizer",
    "NullSymbolizer",
    "SYMBOLIZER_NAMES",
    "default_executable",
    "run_tool",
    "parse_addr2line_output",
    "parse_atos_output",
    "select_symbolizer",
]
