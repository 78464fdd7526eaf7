"""Per-invocation approval gate.

Wraps an ApprovalChannel for a single tool invocation: issues the one
allowed ``ask``, validates every state transition against
lifecycle.VALID_TRANSITIONS, and broadcasts updates on a best-effort
basis. A failed broadcast is logged and swallowed; it never aborts the
owning operation. A broadcast that would move the state backwards is
dropped, so the final state is always the last one observers see.
"""
from __future__ import annotations

import logging
from typing import Any

from .errors import AskPendingError, InvalidApprovalTransitionError
from .integrations import ApprovalChannel
from .lifecycle import validate_transition
from .models import (
    ApprovalState,
    AskResult,
    SayKind,
    ToolKind,
    ToolStatePayload,
)

logger = logging.getLogger(__name__)

ASK_KIND = "tool"


class ToolApproval:
    """Approval state and broadcasts for one invocation."""

    def __init__(
        self,
        channel: ApprovalChannel,
        *,
        tool: ToolKind,
        ts: int,
        is_sub_msg: bool = False,
    ) -> None:
        self._channel = channel
        self._tool = tool
        self._ts = ts
        self._is_sub_msg = is_sub_msg
        self._state: ApprovalState | None = None
        self._asking = False

    @property
    def state(self) -> ApprovalState | None:
        return self._state

    def _payload(self, state: ApprovalState, fields: dict[str, Any]) -> dict[str, Any]:
        payload = ToolStatePayload(
            tool=self._tool,
            ts=self._ts,
            approval_state=state,
            is_sub_msg=self._is_sub_msg,
            **fields,
        )
        return {"tool": payload.to_dict()}

    def _advance(self, state: ApprovalState) -> None:
        validate_transition(self._state, state)
        self._state = state

    async def ask(self, **fields: Any) -> AskResult:
        """Issue the pending prompt and wait for the operator."""
        if self._asking:
            raise AskPendingError(self._ts)
        self._advance(ApprovalState.PENDING)
        self._asking = True
        try:
            result = await self._channel.ask(
                ASK_KIND, self._payload(ApprovalState.PENDING, fields), self._ts,
            )
        finally:
            self._asking = False
        logger.info(
            "Approval answer tool=%s ts=%s response=%s",
            self._tool.value, self._ts, result.response.value,
        )
        return result

    async def update(self, state: ApprovalState, **fields: Any) -> bool:
        """Broadcast a state update. Returns False if it was not delivered."""
        try:
            self._advance(state)
        except InvalidApprovalTransitionError as exc:
            logger.warning(
                "Dropping stale broadcast tool=%s ts=%s: %s",
                self._tool.value, self._ts, exc,
            )
            return False
        try:
            await self._channel.update_ask(
                ASK_KIND, self._payload(state, fields), self._ts,
            )
        except Exception as exc:
            logger.error(
                "Failed to update approval state tool=%s ts=%s state=%s: %s",
                self._tool.value, self._ts, state.value, exc,
            )
            return False
        return True

    async def say(
        self,
        kind: SayKind,
        text: str | None = None,
        images: list[str] | None = None,
    ) -> None:
        """Send a one-way notification, logging delivery failures."""
        try:
            await self._channel.say(kind, text, images)
        except Exception as exc:
            logger.error(
                "Failed to deliver %s notification ts=%s: %s",
                kind.value, self._ts, exc,
            )
