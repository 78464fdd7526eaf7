"""Approval state machine for a single tool invocation.

Defines valid broadcast transitions and enforces them. Invalid
transitions raise rather than silently proceeding.

State Diagram:

    (start) ──┬──> PENDING ──┬──> LOADING ──┬──> APPROVED
              │              │              │
              ├──> LOADING   ├──> APPROVED  ├──> PENDING  (file preview)
              │              │              │
              └──> ERROR     ├──> REJECTED  └──> ERROR
                             │
                             └──> ERROR

    APPROVED and REJECTED only accept re-broadcasts of themselves
    (e.g. to attach operator feedback). ERROR accepts nothing.
"""
from __future__ import annotations

from .errors import InvalidApprovalTransitionError
from .models import ApprovalState

INITIAL_STATES: frozenset[ApprovalState] = frozenset({
    ApprovalState.PENDING,
    ApprovalState.LOADING,
    ApprovalState.ERROR,
})

VALID_TRANSITIONS: dict[ApprovalState, set[ApprovalState]] = {
    ApprovalState.PENDING: {
        ApprovalState.LOADING,
        ApprovalState.APPROVED,
        ApprovalState.REJECTED,
        ApprovalState.ERROR,
    },
    ApprovalState.LOADING: {
        ApprovalState.LOADING,
        ApprovalState.PENDING,
        ApprovalState.APPROVED,
        ApprovalState.ERROR,
    },
    ApprovalState.APPROVED: {
        ApprovalState.APPROVED,
    },
    ApprovalState.REJECTED: {
        ApprovalState.REJECTED,
    },
    ApprovalState.ERROR: set(),
}

TERMINAL_STATES: frozenset[ApprovalState] = frozenset({
    ApprovalState.APPROVED,
    ApprovalState.REJECTED,
    ApprovalState.ERROR,
})


def is_terminal(state: ApprovalState | None) -> bool:
    return state in TERMINAL_STATES


def validate_transition(
    current: ApprovalState | None, target: ApprovalState,
) -> None:
    """Validate a state transition. Raises if invalid."""
    if current is None:
        allowed = INITIAL_STATES
    else:
        allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        current_str = current.value if current is not None else "start"
        allowed_str = (
            ", ".join(sorted(s.value for s in allowed)) or "none (terminal)"
        )
        raise InvalidApprovalTransitionError(
            current_str, target.value, allowed_str,
        )
