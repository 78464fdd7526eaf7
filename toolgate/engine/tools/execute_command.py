"""execute_command: approval-gated shell command with streamed output.

Flow:

    ask(pending) ──not yes──> rejected
        │ yes
        v
    loading ──> run in terminal ──> stream lines (loading broadcasts)
        │
        v
    race(completed, timeout) ──> flush grace ──> approved (final)

A timeout is not a failure. The command keeps running and the model
gets whatever output accumulated ("partial output available"). Any
exception, including missing shell integration, ends in ``error``.

The output reader is stopped before the final broadcast, and the
approval gate drops anything that would follow a terminal state, so
``approved`` is always the last update observers receive.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..errors import (
    CommandProcessError,
    ShellIntegrationUnavailableError,
    ToolInputError,
)
from ..formatting import (
    DENIED_MESSAGE,
    format_tool_denied,
    format_tool_denied_feedback,
    format_tool_error,
    format_tool_response,
)
from ..integrations import ApprovalChannel, ProcessHandle, TerminalManager
from ..config import ToolConfig
from ..models import (
    ApprovalState,
    AskResponse,
    AskResult,
    EarlyExitState,
    ProcessEventKind,
    SayKind,
    ToolInvocation,
    ToolKind,
    ToolResponse,
    UserFeedback,
)
from .base import BaseTool

logger = logging.getLogger(__name__)

MISSING_COMMAND_NOTICE = (
    "The model tried to use execute_command without value for required "
    "parameter 'command'. Retrying..."
)
MISSING_COMMAND_RESULT = (
    "Error: Missing or empty command parameter. Please provide a valid command."
)
COMPLETED_MESSAGE = "Command execution completed successfully."
PARTIAL_MESSAGE = (
    "The command has been executed and is still running; "
    "partial output available."
)


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


def _fail(future: asyncio.Future[None], exc: BaseException) -> None:
    if not future.done():
        future.set_exception(exc)


class ExecuteCommandTool(BaseTool):
    """Runs one command through approval, streaming, and the timeout race."""

    kind = ToolKind.EXECUTE_COMMAND

    def __init__(
        self,
        invocation: ToolInvocation,
        *,
        channel: ApprovalChannel,
        config: ToolConfig,
        terminal_manager: TerminalManager,
    ) -> None:
        super().__init__(invocation, channel=channel, config=config)
        self._terminal_manager = terminal_manager
        self._lines: list[str] = []
        self._early_exit = EarlyExitState.PENDING
        self._completed = False
        self._user_feedback = UserFeedback()
        self._process: ProcessHandle | None = None

    @property
    def output(self) -> str:
        """The output buffer as one newline-joined string."""
        return "\n".join(self._lines)

    @property
    def early_exit(self) -> EarlyExitState:
        return self._early_exit

    @property
    def completed(self) -> bool:
        return self._completed

    def add_user_feedback(
        self, text: str | None = None, images: list[str] | None = None,
    ) -> None:
        """Attach operator feedback given while the command runs."""
        if text:
            if self._user_feedback.text:
                self._user_feedback.text = f"{self._user_feedback.text}\n{text}"
            else:
                self._user_feedback.text = text
        if images:
            self._user_feedback.images.extend(images)

    def state_fields(self) -> dict[str, Any]:
        return {
            "command": self.invocation.input.get("command"),
            "output": self.output or None,
            "early_exit": self._early_exit,
        }

    def _require_command(self) -> str:
        command = self.invocation.input.get("command")
        if not isinstance(command, str) or not command.strip():
            raise ToolInputError(
                self.kind.value, "Missing or empty 'command' parameter",
            )
        return command

    async def execute(self) -> ToolResponse:
        try:
            command = self._require_command()
        except ToolInputError as exc:
            logger.warning("execute_command rejected ts=%s: %s", self.ts, exc)
            await self.approval.say(SayKind.ERROR, MISSING_COMMAND_NOTICE)
            return format_tool_response(MISSING_COMMAND_RESULT)
        return await self._execute_shell_command(command)

    async def _execute_shell_command(self, command: str) -> ToolResponse:
        logger.info(
            "execute_command start ts=%s cwd=%s command=%s",
            self.ts,
            self.config.cwd,
            (command[:180] + "...") if len(command) > 180 else command,
        )
        reader: asyncio.Task[None] | None = None
        try:
            answer = await self.approval.ask(command=command)
            if not answer.approved:
                return await self._handle_denied(command, answer)

            await self.approval.update(ApprovalState.LOADING, command=command)

            terminal = await self._terminal_manager.get_or_create_terminal(
                self.config.cwd,
            )
            terminal.show()
            self._process = self._terminal_manager.run_command(
                terminal,
                command,
                auto_close=self.config.auto_close_terminal,
            )

            completion: asyncio.Future[None] = (
                asyncio.get_running_loop().create_future()
            )
            reader = asyncio.create_task(
                self._stream_output(self._process, command, completion)
            )

            await self._wait_for_completion(completion)
            # A process that already reported completion may still have
            # buffered lines in flight.
            await asyncio.sleep(self.config.output_flush_delay_seconds)
            if (
                completion.done()
                and not completion.cancelled()
                and completion.exception() is not None
            ):
                raise completion.exception()

            await self._stop_reader(reader)
            reader = None
            return await self._finalize(command)
        except Exception as exc:
            if reader is not None:
                await self._stop_reader(reader)
                reader = None
            message = str(exc) or type(exc).__name__
            logger.warning(
                "execute_command failed ts=%s command=%s: %s",
                self.ts, command[:80], message,
            )
            await self.approval.update(
                ApprovalState.ERROR, command=command, output=message,
            )
            return format_tool_response(
                format_tool_error(f"Error executing command:\n{message}")
            )
        finally:
            if reader is not None:
                await self._stop_reader(reader)
            if self._process is not None:
                self._process.detach()

    async def _handle_denied(self, command: str, answer: AskResult) -> ToolResponse:
        await self.approval.update(ApprovalState.REJECTED, command=command)
        if (
            answer.response == AskResponse.MESSAGE
            and not self.config.always_allow_write_only
        ):
            await self.approval.update(
                ApprovalState.REJECTED,
                command=command,
                user_feedback=answer.text,
            )
            await self.approval.say(
                SayKind.USER_FEEDBACK, answer.text or DENIED_MESSAGE, answer.images,
            )
            return format_tool_response(
                format_tool_denied_feedback(answer.text), answer.images,
            )
        return format_tool_response(format_tool_denied())

    async def _wait_for_completion(self, completion: asyncio.Future[None]) -> None:
        """Race natural completion against the command timeout."""
        timeout = self.config.command_timeout_seconds
        try:
            await asyncio.wait_for(asyncio.shield(completion), timeout=timeout)
        except asyncio.TimeoutError:
            logger.info(
                "Command timed out after %.1fs ts=%s; returning partial output "
                "(%d lines), process left running",
                timeout, self.ts, len(self._lines),
            )

    async def _stream_output(
        self,
        process: ProcessHandle,
        command: str,
        completion: asyncio.Future[None],
    ) -> None:
        try:
            async for event in process.events():
                if event.kind == ProcessEventKind.LINE:
                    await self._on_line(command, event.text)
                elif event.kind == ProcessEventKind.COMPLETED:
                    self._early_exit = EarlyExitState.APPROVED
                    self._completed = True
                    logger.debug(
                        "Command completed ts=%s exit_code=%s",
                        self.ts, event.exit_code,
                    )
                    _resolve(completion)
                elif event.kind == ProcessEventKind.ERROR:
                    reason = str(event.error or event.text or "unknown error")
                    logger.error("Error in process ts=%s: %s", self.ts, reason)
                    _fail(completion, CommandProcessError(command, reason))
                elif event.kind == ProcessEventKind.NO_SHELL_INTEGRATION:
                    await self.approval.say(SayKind.SHELL_INTEGRATION_WARNING)
                    _fail(completion, ShellIntegrationUnavailableError())
            _fail(
                completion,
                CommandProcessError(
                    command, "output stream closed before the command completed",
                ),
            )
        except Exception as exc:
            logger.exception("Output reader crashed ts=%s", self.ts)
            _fail(completion, exc)

    async def _on_line(self, command: str, text: str) -> None:
        if not text:
            return
        self._lines.append(text)
        if not self._should_broadcast_output():
            return
        await self.approval.update(
            ApprovalState.LOADING,
            command=command,
            output=self.output,
            early_exit=self._early_exit,
        )

    def _should_broadcast_output(self) -> bool:
        # After natural completion only an approved early exit keeps
        # streaming updates meaningful.
        return not self._completed or self._early_exit == EarlyExitState.APPROVED

    @staticmethod
    async def _stop_reader(reader: asyncio.Task[None]) -> None:
        if not reader.done():
            reader.cancel()
        await asyncio.gather(reader, return_exceptions=True)

    async def _finalize(self, command: str) -> ToolResponse:
        await self.approval.update(
            ApprovalState.APPROVED,
            command=command,
            output=self.output,
            early_exit=self._early_exit,
        )

        tool_result = COMPLETED_MESSAGE if self._completed else PARTIAL_MESSAGE
        feedback = self._user_feedback
        if not feedback.is_empty():
            tool_result += (
                f"\n\nUser feedback:\n<feedback>\n{feedback.text or ''}\n</feedback>"
            )
            await self.approval.update(
                ApprovalState.APPROVED,
                command=command,
                output=self.output,
                early_exit=self._early_exit,
                user_feedback=feedback.text,
            )

        logger.info(
            "execute_command end ts=%s completed=%s lines=%d",
            self.ts, self._completed, len(self._lines),
        )
        if self.invocation.return_empty_on_success:
            return format_tool_response("")

        tool_result += f"\n\nOutput:\n<output>\n{self.output or 'No output'}\n</output>"
        return format_tool_response(tool_result, feedback.images)
