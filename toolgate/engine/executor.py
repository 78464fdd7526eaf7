"""Tool executor: builds the engine for each invocation and runs it.

Every invocation gets a config snapshot, a start/end log line with its
duration, and a single exit point. Cancellation through ``abort(ts)``
and unexpected crashes are turned into error results, so nothing above
this boundary throws.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from .config import ToolConfig
from .formatting import format_tool_error, format_tool_response
from .integrations import ApprovalChannel, DiffViewProvider, TerminalManager
from .models import ToolInvocation, ToolKind, ToolResponse
from .tools import BaseTool, ExecuteCommandTool, WriteFileTool

logger = logging.getLogger(__name__)

# Builds a fresh diff view for one invocation from the session cwd.
DiffViewFactory = Callable[[str], DiffViewProvider]


class ToolExecutor:
    """Runs approval-gated tool invocations for one agent session."""

    def __init__(
        self,
        *,
        channel: ApprovalChannel,
        terminal_manager: TerminalManager,
        diff_view_factory: DiffViewFactory,
        config: ToolConfig | None = None,
    ) -> None:
        self._channel = channel
        self._terminal_manager = terminal_manager
        self._diff_view_factory = diff_view_factory
        self._config = config or ToolConfig()
        self._tools: dict[int, BaseTool] = {}
        self._tasks: dict[int, asyncio.Task[ToolResponse]] = {}
        self._aborted: set[int] = set()
        self._call_seq = 0

    @property
    def config(self) -> ToolConfig:
        return self._config

    def update_config(self, config: ToolConfig) -> None:
        """Replace the session config. In-flight invocations keep their snapshot."""
        self._config = config

    def get_tool(self, ts: int) -> BaseTool | None:
        return self._tools.get(ts)

    def create_tool(self, invocation: ToolInvocation) -> BaseTool:
        """Build and register the engine for ``invocation``.

        Creating the tool before running it lets streamed partial
        updates reach it while the model is still producing input.
        """
        existing = self._tools.get(invocation.ts)
        if existing is not None:
            return existing
        snapshot = self._config
        tool: BaseTool
        if invocation.kind == ToolKind.EXECUTE_COMMAND:
            tool = ExecuteCommandTool(
                invocation,
                channel=self._channel,
                config=snapshot,
                terminal_manager=self._terminal_manager,
            )
        elif invocation.kind == ToolKind.WRITE_TO_FILE:
            tool = WriteFileTool(
                invocation,
                channel=self._channel,
                config=snapshot,
                diff_view=self._diff_view_factory(snapshot.cwd),
            )
        else:
            raise ValueError(f"Unsupported tool kind: {invocation.kind!r}")
        self._tools[invocation.ts] = tool
        return tool

    async def run(self, invocation: ToolInvocation) -> ToolResponse:
        """Run one invocation end-to-end and return its result."""
        try:
            tool = self.create_tool(invocation)
        except ValueError as exc:
            logger.error("Cannot run invocation ts=%s: %s", invocation.ts, exc)
            return format_tool_response(format_tool_error(str(exc)))
        return await self.run_tool(tool)

    async def run_tool(self, tool: BaseTool) -> ToolResponse:
        self._call_seq += 1
        call_seq = self._call_seq
        started = time.monotonic()
        tool_name = tool.kind.value
        logger.info(
            "Tool start seq=%s tool=%s ts=%s", call_seq, tool_name, tool.ts,
        )
        task = asyncio.create_task(tool.execute())
        self._tasks[tool.ts] = task
        try:
            result = await task
            logger.info(
                "Tool end seq=%s tool=%s ts=%s duration_s=%.2f",
                call_seq, tool_name, tool.ts, time.monotonic() - started,
            )
            return result
        except asyncio.CancelledError:
            await tool.broadcast_cancelled()
            if tool.ts not in self._aborted:
                # The caller itself was cancelled; let it unwind.
                raise
            logger.warning(
                "Tool cancelled seq=%s tool=%s ts=%s", call_seq, tool_name, tool.ts,
            )
            return format_tool_response(
                format_tool_error(f"Tool call '{tool_name}' was cancelled.")
            )
        except Exception as exc:
            logger.exception(
                "Tool crash seq=%s tool=%s ts=%s duration_s=%.2f",
                call_seq, tool_name, tool.ts, time.monotonic() - started,
            )
            return format_tool_response(format_tool_error(str(exc)))
        finally:
            self._tasks.pop(tool.ts, None)
            self._tools.pop(tool.ts, None)
            self._aborted.discard(tool.ts)

    async def abort(self, ts: int) -> bool:
        """Cancel an invocation from outside (e.g. session cancellation).

        Returns False when no invocation with ``ts`` is known.
        """
        task = self._tasks.get(ts)
        if task is not None and not task.done():
            logger.info("Aborting running invocation ts=%s", ts)
            self._aborted.add(ts)
            task.cancel()
            return True
        tool = self._tools.pop(ts, None)
        if tool is None:
            return False
        logger.info("Aborting invocation ts=%s before it ran", ts)
        await tool.abort_tool_execution()
        await tool.broadcast_cancelled()
        return True

    async def handle_partial_update(self, ts: int, rel_path: str, content: str) -> bool:
        """Forward streamed file content to a registered write invocation."""
        tool = self._tools.get(ts)
        if not isinstance(tool, WriteFileTool):
            logger.warning("No write_to_file invocation registered for ts=%s", ts)
            return False
        await tool.handle_partial_update(rel_path, content)
        return True

    def add_user_feedback(
        self, ts: int, text: str | None = None, images: list[str] | None = None,
    ) -> bool:
        """Attach operator feedback to a running command invocation."""
        tool = self._tools.get(ts)
        if not isinstance(tool, ExecuteCommandTool):
            logger.warning("No execute_command invocation registered for ts=%s", ts)
            return False
        tool.add_user_feedback(text, images)
        return True
