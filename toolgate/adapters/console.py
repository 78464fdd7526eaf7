"""Interactive approval channel for the terminal.

Prints each approval request and state update, and reads the answer
from stdin: ``y`` approves, ``n`` rejects, anything else is sent back
as free-text feedback (which also rejects).
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from typing import Any, TextIO

from toolgate.engine.integrations import ApprovalChannel
from toolgate.engine.models import AskResponse, AskResult, SayKind

logger = logging.getLogger(__name__)

_YES = {"y", "yes"}
_NO = {"n", "no", ""}


def parse_answer(raw: str) -> AskResult:
    """Map a console answer to an AskResult."""
    text = raw.strip()
    lowered = text.lower()
    if lowered in _YES:
        return AskResult(response=AskResponse.YES)
    if lowered in _NO:
        return AskResult(response=AskResponse.NO)
    return AskResult(response=AskResponse.MESSAGE, text=text)


def _describe(payload: dict[str, Any]) -> str:
    state = payload.get("tool", payload)
    tool = state.get("tool", "?")
    if "command" in state:
        return f"[{tool}] $ {state['command']}"
    if "path" in state:
        return f"[{tool}] {state['path']}"
    return f"[{tool}]"


class ConsoleApprovalChannel(ApprovalChannel):
    """Approve tool calls from a terminal prompt."""

    def __init__(
        self,
        *,
        out: TextIO | None = None,
        read_line: Callable[[str], str] | None = None,
        auto_approve: bool = False,
        show_content: bool = True,
    ) -> None:
        self._out = out or sys.stdout
        self._read_line = read_line or input
        self._auto_approve = auto_approve
        self._show_content = show_content
        self._last_output: dict[int, int] = {}

    def _print(self, text: str) -> None:
        print(text, file=self._out, flush=True)

    async def ask(self, kind: str, payload: dict[str, Any], ts: int) -> AskResult:
        state = payload.get("tool", {})
        self._print(f"\n{_describe(payload)}")
        if self._show_content and state.get("content"):
            self._print(state["content"])
        if self._auto_approve:
            self._print("(auto-approved)")
            return AskResult(response=AskResponse.YES)
        raw = await asyncio.to_thread(
            self._read_line, "Approve? [y]es / [n]o / or type feedback: ",
        )
        answer = parse_answer(raw)
        logger.debug("Console answer ts=%s response=%s", ts, answer.response.value)
        return answer

    async def update_ask(self, kind: str, payload: dict[str, Any], ts: int) -> None:
        state = payload.get("tool", {})
        output = state.get("output")
        if output:
            # Print only the lines not shown yet.
            seen = self._last_output.get(ts, 0)
            lines = output.split("\n")
            for line in lines[seen:]:
                self._print(f"  | {line}")
            self._last_output[ts] = len(lines)
        approval_state = state.get("approvalState")
        if approval_state in ("approved", "rejected", "error"):
            self._last_output.pop(ts, None)
            self._print(f"{_describe(payload)} -> {approval_state}")

    async def say(
        self,
        kind: SayKind,
        text: str | None = None,
        images: list[str] | None = None,
    ) -> None:
        label = SayKind(kind).value
        if kind == SayKind.USER_FEEDBACK_DIFF and text:
            try:
                text = json.loads(text).get("diff", text)
            except (ValueError, AttributeError):
                pass
        self._print(f"[{label}] {text or ''}".rstrip())
        if images:
            self._print(f"[{label}] ({len(images)} image(s) attached)")
