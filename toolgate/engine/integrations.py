"""Abstract collaborators consumed by the tool engines.

The engines never talk to a UI, a shell, or an editor directly. They
go through these narrow interfaces:

- ApprovalChannel: human-in-the-loop prompts and state broadcasts.
- TerminalManager / ProcessHandle: long-running external commands.
- DiffViewProvider: incremental preview/commit surface for file writes.

Concrete implementations live in toolgate.adapters.
"""
from __future__ import annotations

import abc
from typing import Any, AsyncIterator

from .models import AskResult, ProcessEvent, SaveResult, SayKind


class ApprovalChannel(abc.ABC):
    """Request/response protocol between the agent and an operator."""

    @abc.abstractmethod
    async def ask(self, kind: str, payload: dict[str, Any], ts: int) -> AskResult:
        """Suspend until the operator answers or the request is superseded."""

    @abc.abstractmethod
    async def update_ask(self, kind: str, payload: dict[str, Any], ts: int) -> None:
        """Push a state update for an in-flight or completed request.

        Consumers render only the most recent payload per ``ts``.
        """

    @abc.abstractmethod
    async def say(
        self,
        kind: SayKind,
        text: str | None = None,
        images: list[str] | None = None,
    ) -> None:
        """One-way notification; no response expected."""


class ProcessHandle(abc.ABC):
    """A running external command.

    ``events()`` yields ``line`` events in emission order and ends after
    exactly one of ``completed``, ``error`` or ``no_shell_integration``.
    """

    @abc.abstractmethod
    def events(self) -> AsyncIterator[ProcessEvent]:
        """Iterate over process events."""

    @abc.abstractmethod
    def detach(self) -> None:
        """Stop delivering events to this consumer. Does not kill the process."""

    @abc.abstractmethod
    def terminate(self) -> bool:
        """Ask the process to stop. Returns False if it already exited."""


class Terminal(abc.ABC):
    """A terminal a command runs in."""

    @property
    @abc.abstractmethod
    def cwd(self) -> str:
        """Directory the terminal was opened in."""

    @abc.abstractmethod
    def show(self) -> None:
        """Make the terminal visible to the operator."""


class TerminalManager(abc.ABC):
    """Creates terminals and runs commands in them."""

    @abc.abstractmethod
    async def get_or_create_terminal(self, cwd: str) -> Terminal:
        """Return an idle terminal for ``cwd``, creating one if needed."""

    @abc.abstractmethod
    def run_command(
        self,
        terminal: Terminal,
        command: str,
        *,
        auto_close: bool = False,
    ) -> ProcessHandle:
        """Start ``command`` in ``terminal``."""


class DiffViewProvider(abc.ABC):
    """Incremental preview/commit surface for one file.

    ``is_editing`` is true while a preview is in progress.
    """

    is_editing: bool = False

    @abc.abstractmethod
    async def open(self, rel_path: str) -> None:
        """Open a preview for ``rel_path``."""

    @abc.abstractmethod
    async def update(self, content: str, is_final: bool) -> None:
        """Show ``content`` as the proposed file content. Idempotent."""

    @abc.abstractmethod
    def is_diff_view_open(self) -> bool:
        """Whether a preview is currently open."""

    @abc.abstractmethod
    async def save_changes(self) -> SaveResult:
        """Commit the previewed content, reporting operator edits."""

    @abc.abstractmethod
    async def revert_changes(self) -> None:
        """Discard the preview and restore the pre-preview content."""
