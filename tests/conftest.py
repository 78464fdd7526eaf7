"""Shared fakes for the tool engine tests."""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from toolgate.engine.config import ToolConfig
from toolgate.engine.integrations import (
    ApprovalChannel,
    DiffViewProvider,
    ProcessHandle,
    Terminal,
    TerminalManager,
)
from toolgate.engine.models import (
    AskResponse,
    AskResult,
    ProcessEvent,
    SaveResult,
    SayKind,
)

# Sentinel in a process script: block forever instead of finishing.
HANG = object()


class RecordingChannel(ApprovalChannel):
    """Answers asks from a script and records everything it is sent."""

    def __init__(self, answers: list[AskResult] | None = None) -> None:
        self.answers = list(answers or [])
        self.asks: list[dict[str, Any]] = []
        self.updates: list[dict[str, Any]] = []
        self.says: list[tuple[SayKind, str | None, list[str] | None]] = []
        # Called with the ask payload before answering.
        self.on_ask: Callable[[dict[str, Any]], Any] | None = None
        self.fail_updates = False

    async def ask(self, kind: str, payload: dict[str, Any], ts: int) -> AskResult:
        self.asks.append(payload["tool"])
        if self.on_ask is not None:
            result = self.on_ask(payload["tool"])
            if asyncio.iscoroutine(result):
                await result
        if self.answers:
            return self.answers.pop(0)
        return AskResult(response=AskResponse.YES)

    async def update_ask(self, kind: str, payload: dict[str, Any], ts: int) -> None:
        if self.fail_updates:
            raise ConnectionError("webview gone")
        self.updates.append(payload["tool"])

    async def say(
        self,
        kind: SayKind,
        text: str | None = None,
        images: list[str] | None = None,
    ) -> None:
        self.says.append((kind, text, images))

    @property
    def states(self) -> list[str]:
        return [u["approvalState"] for u in self.updates]


class ScriptedProcess(ProcessHandle):
    """Replays a fixed list of events (HANG blocks forever)."""

    def __init__(self, script: list[Any]) -> None:
        self.script = list(script)
        self.detached = False
        self.terminated = False

    async def events(self) -> AsyncIterator[ProcessEvent]:
        for item in self.script:
            await asyncio.sleep(0)
            if item is HANG:
                await asyncio.Event().wait()
            yield item
            if item.is_terminal:
                return

    def detach(self) -> None:
        self.detached = True

    def terminate(self) -> bool:
        self.terminated = True
        return True


class FakeTerminal(Terminal):
    def __init__(self, cwd: str) -> None:
        self._cwd = cwd
        self.shown = False

    @property
    def cwd(self) -> str:
        return self._cwd

    def show(self) -> None:
        self.shown = True


class FakeTerminalManager(TerminalManager):
    def __init__(self, script: list[Any] | None = None) -> None:
        self.script = list(script or [])
        self.commands: list[tuple[str, bool]] = []
        self.terminals: list[FakeTerminal] = []
        self.processes: list[ScriptedProcess] = []

    async def get_or_create_terminal(self, cwd: str) -> FakeTerminal:
        terminal = FakeTerminal(cwd)
        self.terminals.append(terminal)
        return terminal

    def run_command(
        self, terminal: Terminal, command: str, *, auto_close: bool = False,
    ) -> ScriptedProcess:
        self.commands.append((command, auto_close))
        process = ScriptedProcess(self.script)
        self.processes.append(process)
        return process


class FakeDiffView(DiffViewProvider):
    """In-memory diff view that records calls."""

    def __init__(self, user_edits: str | None = None) -> None:
        self.is_editing = False
        self.opened: list[str] = []
        self.updates: list[tuple[str, bool]] = []
        self.saved = 0
        self.reverted = 0
        self.user_edits = user_edits
        self.save_error: Exception | None = None
        self._open = False

    async def open(self, rel_path: str) -> None:
        self.opened.append(rel_path)
        self._open = True
        self.is_editing = True

    async def update(self, content: str, is_final: bool) -> None:
        self.updates.append((content, is_final))

    def is_diff_view_open(self) -> bool:
        return self._open

    async def save_changes(self) -> SaveResult:
        if self.save_error is not None:
            raise self.save_error
        self.saved += 1
        self._open = False
        content = self.updates[-1][0] if self.updates else ""
        return SaveResult(user_edits=self.user_edits, final_content=content)

    async def revert_changes(self) -> None:
        if not self._open:
            return
        self.reverted += 1
        self._open = False


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def fast_config(tmp_path) -> ToolConfig:
    return ToolConfig(
        cwd=str(tmp_path),
        command_timeout_seconds=0.2,
        output_flush_delay_seconds=0.01,
        write_update_interval_seconds=0.0,
    )
