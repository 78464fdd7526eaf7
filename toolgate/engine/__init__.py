"""Tool engine: approval-gated command execution and file writes."""
from .models import (
    ApprovalState,
    AskResponse,
    AskResult,
    EarlyExitState,
    ProcessEvent,
    ProcessEventKind,
    SaveResult,
    SayKind,
    ToolInvocation,
    ToolKind,
    ToolResponse,
    ToolStatePayload,
    UserFeedback,
)
from .config import ToolConfig
from .errors import (
    AskPendingError,
    AskSupersededError,
    CommandProcessError,
    DiffViewError,
    InvalidApprovalTransitionError,
    ShellIntegrationUnavailableError,
    ToolGateError,
    ToolInputError,
)
from .executor import ToolExecutor

__all__ = [
    "ToolExecutor",
    "ToolConfig",
    # Models
    "ApprovalState",
    "AskResponse",
    "AskResult",
    "EarlyExitState",
    "ProcessEvent",
    "ProcessEventKind",
    "SaveResult",
    "SayKind",
    "ToolInvocation",
    "ToolKind",
    "ToolResponse",
    "ToolStatePayload",
    "UserFeedback",
    # Errors
    "AskPendingError",
    "AskSupersededError",
    "CommandProcessError",
    "DiffViewError",
    "InvalidApprovalTransitionError",
    "ShellIntegrationUnavailableError",
    "ToolGateError",
    "ToolInputError",
]
