"""write_to_file: approval-gated file write through a diff preview.

Flow:

    preview (diff view) ──> ask(pending) ──not yes──> revert, rejected
                                 │ yes
                                 v
                      save ──> approved (+ user edits, if any)

While the model is still streaming the file, ``handle_partial_update``
pushes throttled previews. Once the final content is being processed,
straggling partial updates are dropped.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from ..config import ToolConfig
from ..errors import ToolInputError
from ..formatting import (
    DENIED_MESSAGE,
    format_tool_denied_feedback,
    format_tool_error,
    format_tool_response,
)
from ..integrations import ApprovalChannel, DiffViewProvider
from ..models import (
    ApprovalState,
    AskResponse,
    AskResult,
    SayKind,
    ToolInvocation,
    ToolKind,
    ToolResponse,
)
from ...shared.file_utils import (
    file_exists_at_path,
    get_readable_path,
    resolve_path,
    to_posix,
)
from .base import BaseTool

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Write operation cancelled by user."

_FENCE = "```"


def preprocess_content(content: str) -> str:
    """Clean up model-produced file content.

    Trims surrounding whitespace, drops a leading and/or trailing
    fenced-code delimiter line, and unescapes the HTML entities models
    tend to over-escape.
    """
    content = content.strip()
    if content.startswith(_FENCE):
        content = "\n".join(content.split("\n")[1:]).strip()
    if content.endswith(_FENCE):
        content = "\n".join(content.split("\n")[:-1]).strip()
    return (
        content.replace("&gt;", ">")
        .replace("&lt;", "<")
        .replace("&quot;", '"')
    )


class WriteFileTool(BaseTool):
    """Previews, approves, and commits one file write."""

    kind = ToolKind.WRITE_TO_FILE

    def __init__(
        self,
        invocation: ToolInvocation,
        *,
        channel: ApprovalChannel,
        config: ToolConfig,
        diff_view: DiffViewProvider,
    ) -> None:
        super().__init__(invocation, channel=channel, config=config)
        self.diff_view = diff_view
        self._is_processing_final_content = False
        # Set once the final preview is shown; partials never apply after it.
        self._final_preview_shown = False
        self._last_update_time: float | None = None
        self._update_interval = config.write_update_interval_seconds
        # Serialises open/update between streamed partials and the final preview.
        self._preview_lock = asyncio.Lock()
        self._skip_write_animation = config.skip_write_animation

    @property
    def is_processing_final_content(self) -> bool:
        return self._is_processing_final_content

    async def execute(self) -> ToolResponse:
        return await self._process_file_write()

    async def handle_partial_update(self, rel_path: str, content: str) -> None:
        """Preview content that is still streaming in from the model."""
        # The diff view is not instant; a late partial update must not
        # overwrite the final preview.
        if self._is_processing_final_content:
            logger.warning(
                "Skipping partial update ts=%s: final content is being processed",
                self.ts,
            )
            return

        if self._skip_write_animation:
            await self.approval.update(
                ApprovalState.LOADING, path=rel_path, content=content,
            )
            return

        now = time.monotonic()
        if (
            self._last_update_time is not None
            and now - self._last_update_time < self._update_interval
        ):
            return

        async with self._preview_lock:
            # The final preview may have taken over while we waited.
            if self._final_preview_shown:
                logger.debug("Dropping partial update ts=%s after final preview", self.ts)
                return
            if not self.diff_view.is_diff_view_open():
                try:
                    await self.diff_view.open(rel_path)
                except Exception as exc:
                    logger.error("Error opening diff view ts=%s: %s", self.ts, exc)
                    return
            await self.diff_view.update(content, False)
            self._last_update_time = now

    def state_fields(self) -> dict[str, Any]:
        return {"path": self.invocation.input.get("path")}

    def _require_input(self) -> tuple[str, str]:
        rel_path = self.invocation.input.get("path")
        content = self.invocation.input.get("content")
        if not rel_path or not content:
            raise ToolInputError(
                self.kind.value, "Missing required parameters 'path' or 'content'",
            )
        return str(rel_path), str(content)

    async def _process_file_write(self) -> ToolResponse:
        rel_path: str | None = None
        content: str | None = None
        try:
            rel_path, raw_content = self._require_input()
            content = preprocess_content(raw_content)

            await self._show_changes_in_diff_view(rel_path, content)

            logger.info("Asking for write approval ts=%s path=%s", self.ts, rel_path)
            answer = await self.approval.ask(path=rel_path, content=content)
            if not answer.approved:
                return await self._handle_denied(rel_path, content, answer)

            file_exists = await file_exists_at_path(
                resolve_path(self.config.cwd, rel_path)
            )
            saved = await self.diff_view.save_changes()

            await self.approval.update(
                ApprovalState.APPROVED, path=rel_path, content=content,
            )

            if saved.user_edits:
                await self.approval.say(
                    SayKind.USER_FEEDBACK_DIFF,
                    json.dumps({
                        "tool": "editedExistingFile" if file_exists else "newFileCreated",
                        "path": get_readable_path(self.config.cwd, rel_path),
                        "diff": saved.user_edits,
                    }),
                )
                return format_tool_response(
                    "The user made the following updates to your content:\n\n"
                    f"{saved.user_edits}\n\n"
                    f"The updated content has been successfully saved to "
                    f"{to_posix(rel_path)}. (Note: you don't need to re-write "
                    "the file with these changes.)"
                )

            return format_tool_response(
                f"The content was successfully saved to {to_posix(rel_path)}. "
                "Do not read the file again unless you forgot the content."
            )
        except ToolInputError as exc:
            logger.warning("write_to_file rejected ts=%s: %s", self.ts, exc)
            return format_tool_response(f"Write to File Error With:{exc}")
        except asyncio.CancelledError:
            await self.abort_tool_execution()
            raise
        except Exception as exc:
            logger.exception("Error in write_to_file ts=%s path=%s", self.ts, rel_path)
            await self._revert_quietly()
            await self.approval.update(
                ApprovalState.ERROR, path=rel_path, content=content,
            )
            return format_tool_response(
                format_tool_error(f"Write to File Error With:{exc}")
            )
        finally:
            self._is_processing_final_content = False
            self.diff_view.is_editing = False

    async def _show_changes_in_diff_view(self, rel_path: str, content: str) -> None:
        async with self._preview_lock:
            if not self.diff_view.is_diff_view_open():
                await self.diff_view.open(rel_path)
            await self.diff_view.update(content, False)
            self._is_processing_final_content = True
            self._final_preview_shown = True

    async def _handle_denied(
        self, rel_path: str, content: str, answer: AskResult,
    ) -> ToolResponse:
        await self.diff_view.revert_changes()
        await self.approval.update(
            ApprovalState.REJECTED,
            path=rel_path,
            content=content,
            user_feedback=answer.text,
        )
        if answer.response == AskResponse.NO:
            return format_tool_response(CANCELLED_MESSAGE)

        await self.approval.say(
            SayKind.USER_FEEDBACK, answer.text or DENIED_MESSAGE, answer.images,
        )
        if answer.text:
            return format_tool_response(
                format_tool_denied_feedback(answer.text), answer.images,
            )
        return format_tool_response(CANCELLED_MESSAGE, answer.images)

    async def _revert_quietly(self) -> None:
        if not self.diff_view.is_diff_view_open():
            return
        try:
            await self.diff_view.revert_changes()
        except Exception:
            logger.exception("Failed to revert diff view ts=%s", self.ts)

    async def abort_tool_execution(self) -> None:
        """Discard the preview, restoring the file's pre-preview content."""
        logger.info("Aborting write_to_file ts=%s", self.ts)
        await self.diff_view.revert_changes()
