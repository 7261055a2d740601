"""Exception hierarchy for the agent execution core.

Only a few of these ever escape a run: tool failures are converted into
observations at the acting boundary and model failures end the run in the
``failed`` state. The remaining types are raised at API seams (unknown
session, resuming a run that never started).
"""

from __future__ import annotations


class TandemError(Exception):
    """Base class for all errors raised by ``tandem_ai``."""


class ModelCallError(TandemError):
    """A model provider call failed in a way that may succeed on retry."""

    def __init__(self, message: str, *, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class ToolNotFoundError(TandemError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool [{tool_name}] not found.")
        self.tool_name = tool_name


class ToolExecutionError(TandemError):
    """A tool raised while executing."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name


class InvalidToolArgumentsError(ToolExecutionError):
    """The argument map does not fit the tool's signature."""


class SessionNotFoundError(TandemError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidTraceStateError(TandemError):
    """A run was asked to do something its current state does not allow."""
