"""Shared base for approval-gated tools."""
from __future__ import annotations

import abc
import logging
from typing import Any, ClassVar

from ..approval import ToolApproval
from ..config import ToolConfig
from ..integrations import ApprovalChannel
from ..lifecycle import is_terminal
from ..models import ApprovalState, ToolInvocation, ToolKind, ToolResponse

logger = logging.getLogger(__name__)


class BaseTool(abc.ABC):
    """One tool invocation driven end-to-end.

    Subclasses implement ``execute()`` and return a textual result on
    every path. ``abort_tool_execution()`` is called when the
    invocation is cancelled from outside.
    """

    kind: ClassVar[ToolKind]

    def __init__(
        self,
        invocation: ToolInvocation,
        *,
        channel: ApprovalChannel,
        config: ToolConfig,
    ) -> None:
        if invocation.kind != self.kind:
            raise ValueError(
                f"{type(self).__name__} cannot run {invocation.kind.value} invocations"
            )
        self.invocation = invocation
        self.config = config
        self.approval = ToolApproval(
            channel,
            tool=self.kind,
            ts=invocation.ts,
            is_sub_msg=invocation.is_sub_msg,
        )

    @property
    def ts(self) -> int:
        return self.invocation.ts

    @abc.abstractmethod
    async def execute(self) -> ToolResponse:
        """Run the invocation and return the model-facing result."""

    async def abort_tool_execution(self) -> None:
        """Undo in-flight side effects. Default: nothing to undo."""
        logger.info("Abort requested tool=%s ts=%s", self.kind.value, self.ts)

    def state_fields(self) -> dict[str, Any]:
        """Fields identifying this invocation in a state broadcast."""
        return {}

    async def broadcast_cancelled(self) -> None:
        """Move observers to ``error`` after an external cancellation."""
        if is_terminal(self.approval.state):
            return
        await self.approval.update(ApprovalState.ERROR, **self.state_fields())
