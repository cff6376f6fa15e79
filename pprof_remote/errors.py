#!/usr/bin/env python3
"""
errors.py

Exception types shared by the pprof_remote modules.
"""

from __future__ import annotations

from typing import Optional


class PprofRemoteError(Exception):
    """Base class for all errors raised by pprof_remote."""


class SymbolizerError(PprofRemoteError):
    """
    An external symbolizer could not be spawned or exited non-zero.

    The resolver treats this as non-fatal: the affected addresses simply
    stay unresolved.
    """

    def __init__(
        self,
        tool: str,
        message: str,
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.tool = tool
        self.returncode = returncode
        self.stderr = stderr


class ProfilerError(PprofRemoteError):
    """A call into the profiler library failed."""


class ProfilerUnavailable(ProfilerError):
    """The profiler library (or the requested function) is not available."""


__all__ = [
    "PprofRemoteError",
    "SymbolizerError",
    "ProfilerError",
    "ProfilerUnavailable",
]
