"""Shell-backed terminals for execute_command.

Each terminal runs one command at a time in an asyncio subprocess.
stdout and stderr are merged and split into lines; the handle yields
``line`` events followed by exactly one terminal event.

TIMEOUT MODEL:
The engine's timeout only stops *waiting*. ``detach()`` stops event
delivery but keeps draining the pipe so the process never blocks on a
full buffer; the process runs to completion unless ``terminate()`` is
called by an outside lifecycle manager.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
import os
import shutil
import signal
from collections.abc import AsyncIterator, Callable

from toolgate.engine.integrations import ProcessHandle, Terminal, TerminalManager
from toolgate.engine.models import ProcessEvent, ProcessEventKind

logger = logging.getLogger(__name__)

_SHELL_CANDIDATES = ("bash", "zsh", "sh")
_STREAM_LIMIT = 1024 * 1024


def find_shell() -> str | None:
    """Return the first available shell executable, or None."""
    for name in _SHELL_CANDIDATES:
        path = shutil.which(name)
        if path:
            return path
    return None


class ShellTerminal(Terminal):
    """A terminal bound to one working directory."""

    def __init__(self, terminal_id: int, cwd: str) -> None:
        self.terminal_id = terminal_id
        self._cwd = cwd
        self.busy = False
        self.visible = False
        self.closed = False

    @property
    def cwd(self) -> str:
        return self._cwd

    def show(self) -> None:
        self.visible = True
        logger.debug("Terminal %s shown (cwd=%s)", self.terminal_id, self._cwd)


class ShellProcessHandle(ProcessHandle):
    """One command running in a ShellTerminal."""

    def __init__(
        self,
        command: str,
        cwd: str,
        *,
        shell: str | None,
        on_exit: Callable[[ShellProcessHandle], None] | None = None,
    ) -> None:
        self.command = command
        self.cwd = cwd
        self._shell = shell
        self._on_exit = on_exit
        self._queue: asyncio.Queue[ProcessEvent] = asyncio.Queue()
        self._detached = False
        self._proc: asyncio.subprocess.Process | None = None
        self.exit_code: int | None = None
        self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def running(self) -> bool:
        return not self._pump_task.done()

    def _emit(self, event: ProcessEvent) -> None:
        if self._detached:
            return
        self._queue.put_nowait(event)

    async def _pump(self) -> None:
        try:
            if not self._shell:
                logger.error("No shell available to run %r", self.command[:80])
                self._emit(ProcessEvent(ProcessEventKind.NO_SHELL_INTEGRATION))
                return
            try:
                self._proc = await asyncio.create_subprocess_shell(
                    self.command,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                    cwd=self.cwd,
                    start_new_session=True,
                    executable=self._shell,
                    limit=_STREAM_LIMIT,
                )
            except OSError as exc:
                logger.error("Failed to start %r in %s: %s", self.command[:80], self.cwd, exc)
                self._emit(ProcessEvent(ProcessEventKind.ERROR, error=exc))
                return

            logger.info(
                "Started command pid=%s cwd=%s command=%s",
                self._proc.pid, self.cwd,
                (self.command[:180] + "...") if len(self.command) > 180 else self.command,
            )
            assert self._proc.stdout is not None
            try:
                while True:
                    raw = await self._proc.stdout.readline()
                    if not raw:
                        break
                    self._emit(ProcessEvent(
                        ProcessEventKind.LINE,
                        text=raw.decode(errors="replace").rstrip("\r\n"),
                    ))
            except ValueError as exc:
                # Line longer than the stream limit.
                logger.error("Output read failed pid=%s: %s", self._proc.pid, exc)
                self._emit(ProcessEvent(ProcessEventKind.ERROR, error=exc))
                return
            self.exit_code = await self._proc.wait()
            logger.info("Command exited pid=%s exit_code=%s", self._proc.pid, self.exit_code)
            self._emit(ProcessEvent(ProcessEventKind.COMPLETED, exit_code=self.exit_code))
        finally:
            if self._on_exit is not None:
                self._on_exit(self)

    async def events(self) -> AsyncIterator[ProcessEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.is_terminal:
                return

    def detach(self) -> None:
        if self._detached:
            return
        self._detached = True
        # Drop anything queued; the pump keeps draining the pipe.
        while not self._queue.empty():
            self._queue.get_nowait()

    def terminate(self) -> bool:
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return False
        try:
            if hasattr(os, "killpg"):
                os.killpg(proc.pid, signal.SIGTERM)
            else:
                proc.terminate()
            logger.warning("Sent SIGTERM to command pid=%s", proc.pid)
            return True
        except ProcessLookupError:
            return False

    async def wait(self) -> int | None:
        """Wait until the process has exited and return its exit code."""
        await asyncio.shield(self._pump_task)
        return self.exit_code


class ShellTerminalManager(TerminalManager):
    """Creates shell terminals and reuses idle ones per cwd."""

    def __init__(self, shell: str | None = None) -> None:
        self._shell = shell if shell is not None else find_shell()
        self._terminals: dict[int, ShellTerminal] = {}
        self._processes: dict[int, ShellProcessHandle] = {}
        self._ids = itertools.count(1)

    @property
    def terminals(self) -> list[ShellTerminal]:
        return list(self._terminals.values())

    async def get_or_create_terminal(self, cwd: str) -> ShellTerminal:
        cwd = os.path.abspath(cwd)
        for terminal in self._terminals.values():
            if terminal.cwd == cwd and not terminal.busy:
                logger.debug("Reusing terminal %s for cwd=%s", terminal.terminal_id, cwd)
                return terminal
        terminal = ShellTerminal(next(self._ids), cwd)
        self._terminals[terminal.terminal_id] = terminal
        logger.info("Created terminal %s for cwd=%s", terminal.terminal_id, cwd)
        return terminal

    def run_command(
        self,
        terminal: Terminal,
        command: str,
        *,
        auto_close: bool = False,
    ) -> ShellProcessHandle:
        if not isinstance(terminal, ShellTerminal) or terminal.closed:
            raise ValueError("run_command needs an open terminal from this manager")
        terminal.busy = True

        def _on_exit(handle: ShellProcessHandle) -> None:
            terminal.busy = False
            self._processes.pop(terminal.terminal_id, None)
            if auto_close:
                self.close_terminal(terminal)

        handle = ShellProcessHandle(
            command, terminal.cwd, shell=self._shell, on_exit=_on_exit,
        )
        self._processes[terminal.terminal_id] = handle
        return handle

    def close_terminal(self, terminal: ShellTerminal) -> None:
        terminal.closed = True
        self._terminals.pop(terminal.terminal_id, None)
        logger.debug("Closed terminal %s", terminal.terminal_id)

    def terminate_all(self) -> int:
        """Signal every running command. Returns how many were signalled."""
        return sum(1 for handle in list(self._processes.values()) if handle.terminate())
