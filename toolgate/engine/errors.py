"""Exception hierarchy for the tool execution engine.

Engines catch these at their outermost scope and turn them into
textual results; nothing above the engine boundary throws.
"""
from __future__ import annotations


class ToolGateError(Exception):
    """Base exception for all tool engine errors."""


class ToolInputError(ToolGateError):
    """A required tool parameter is missing or empty."""
    def __init__(self, tool_name: str, reason: str):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(reason)


class ShellIntegrationUnavailableError(ToolGateError):
    """The terminal cannot report command output."""
    def __init__(self) -> None:
        super().__init__(
            "No shell integration, cannot run commands please enable "
            "shell integration otherwise commands will not run."
        )


class CommandProcessError(ToolGateError):
    """The external process reported a failure."""
    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Process for '{command[:80]}' failed: {reason}")


class DiffViewError(ToolGateError):
    """The diff session was used out of order or could not be opened."""


class InvalidApprovalTransitionError(ToolGateError, ValueError):
    """An approval state broadcast would move the state backwards."""
    def __init__(self, current: str, target: str, allowed: str):
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid approval transition: {current} -> {target}. "
            f"Allowed from {current}: {allowed}"
        )


class AskPendingError(ToolGateError):
    """A second approval prompt was issued while one is outstanding."""
    def __init__(self, ts: int):
        self.ts = ts
        super().__init__(f"An approval request is already pending for {ts}")


class AskSupersededError(ToolGateError):
    """An outstanding approval prompt was withdrawn before an answer."""
    def __init__(self, ts: int):
        self.ts = ts
        super().__init__(f"Approval request {ts} was superseded")
