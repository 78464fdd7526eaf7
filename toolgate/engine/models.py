"""Core data models for the tool execution engine.

All dataclasses, enums, and type aliases. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ToolKind(str, Enum):
    """Tool kinds handled by the engine."""
    EXECUTE_COMMAND = "execute_command"
    WRITE_TO_FILE = "write_to_file"


class ApprovalState(str, Enum):
    """Broadcast state of one invocation. See lifecycle.py for transitions."""
    PENDING = "pending"
    LOADING = "loading"
    APPROVED = "approved"
    REJECTED = "rejected"
    ERROR = "error"


class EarlyExitState(str, Enum):
    """Whether a command reported natural completion before the timeout."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AskResponse(str, Enum):
    """Operator answers to an approval prompt."""
    YES = "yesButtonTapped"
    NO = "noButtonTapped"
    MESSAGE = "messageResponse"


class SayKind(str, Enum):
    """One-way notification channels."""
    ERROR = "error"
    USER_FEEDBACK = "user_feedback"
    USER_FEEDBACK_DIFF = "user_feedback_diff"
    SHELL_INTEGRATION_WARNING = "shell_integration_warning"


# A tool result is plain text, or a list of content blocks
# (one text block followed by image blocks).
ToolResponse = Union[str, list[dict[str, Any]]]

_last_ts = 0


def next_ts() -> int:
    """Return a strictly increasing millisecond timestamp id."""
    global _last_ts
    now = time.time_ns() // 1_000_000
    _last_ts = max(now, _last_ts + 1)
    return _last_ts


@dataclass(frozen=True)
class ToolInvocation:
    """One tool call requested by the model. Immutable once created."""
    ts: int
    kind: ToolKind
    input: dict[str, Any] = field(default_factory=dict)
    is_sub_msg: bool = False
    # Return an empty result when the tool succeeds (used by batch flows
    # that only care about failures).
    return_empty_on_success: bool = False

    @classmethod
    def create(
        cls,
        kind: ToolKind | str,
        input: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> ToolInvocation:
        return cls(
            ts=next_ts(),
            kind=ToolKind(kind),
            input=dict(input or {}),
            **kwargs,
        )


@dataclass
class AskResult:
    """Operator answer to an `ask` call."""
    response: AskResponse
    text: str | None = None
    images: list[str] | None = None

    @property
    def approved(self) -> bool:
        return self.response == AskResponse.YES


@dataclass
class UserFeedback:
    """Free text and images the operator attached to an invocation."""
    text: str | None = None
    images: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.text or self.images)


@dataclass
class ToolStatePayload:
    """State broadcast for one invocation, rendered by the UI layer."""
    tool: ToolKind
    ts: int
    approval_state: ApprovalState
    is_sub_msg: bool = False
    command: str | None = None
    path: str | None = None
    content: str | None = None
    output: str | None = None
    early_exit: EarlyExitState | None = None
    user_feedback: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase wire dict, dropping unset fields."""
        raw = {
            "tool": self.tool.value,
            "ts": self.ts,
            "approvalState": self.approval_state.value,
            "isSubMsg": self.is_sub_msg,
            "command": self.command,
            "path": self.path,
            "content": self.content,
            "output": self.output,
            "earlyExit": (
                self.early_exit.value if self.early_exit is not None else None
            ),
            "userFeedback": self.user_feedback,
        }
        return {k: v for k, v in raw.items() if v is not None}


@dataclass
class SaveResult:
    """Outcome of committing a diff session."""
    user_edits: str | None = None
    final_content: str = ""


class ProcessEventKind(str, Enum):
    """Events emitted by an external process handle."""
    LINE = "line"
    COMPLETED = "completed"
    ERROR = "error"
    NO_SHELL_INTEGRATION = "no_shell_integration"


TERMINAL_PROCESS_EVENTS = frozenset({
    ProcessEventKind.COMPLETED,
    ProcessEventKind.ERROR,
    ProcessEventKind.NO_SHELL_INTEGRATION,
})


@dataclass(frozen=True)
class ProcessEvent:
    """A single event from a running command."""
    kind: ProcessEventKind
    text: str = ""
    exit_code: int | None = None
    error: BaseException | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_PROCESS_EVENTS
