"""Tool result formatting.

Turns final text and optional image data URLs into the response the
model consumes: plain text, or a text block followed by image blocks.
"""
from __future__ import annotations

import logging
from typing import Any

from .models import ToolResponse

logger = logging.getLogger(__name__)

DENIED_MESSAGE = "The user denied this operation."


def format_images_into_blocks(images: list[str] | None) -> list[dict[str, Any]]:
    """Convert ``data:<mime>;base64,<data>`` URLs into image blocks.

    Malformed entries are skipped with a warning.
    """
    blocks: list[dict[str, Any]] = []
    for data_url in images or []:
        header, sep, data = data_url.partition(",")
        if not sep or ":" not in header:
            logger.warning("Skipping malformed image data URL (%d chars)", len(data_url))
            continue
        media_type = header.split(":", 1)[1].split(";", 1)[0]
        blocks.append({
            "type": "image",
            "source": {"type": "base64", "media_type": media_type, "data": data},
        })
    return blocks


def format_tool_response(text: str, images: list[str] | None = None) -> ToolResponse:
    """Return plain text, or a text block plus image blocks when images exist."""
    image_blocks = format_images_into_blocks(images)
    if image_blocks:
        return [{"type": "text", "text": text}, *image_blocks]
    return text


def format_tool_denied() -> str:
    return DENIED_MESSAGE


def format_tool_denied_feedback(feedback: str | None) -> str:
    return (
        "The user denied this operation and provided the following feedback:\n"
        f"<feedback>\n{feedback or ''}\n</feedback>"
    )


def format_tool_error(error: str | None) -> str:
    return (
        "The tool execution failed with the following error:\n"
        f"<error>\n{error or 'Unknown error'}\n</error>"
    )


def response_text(response: ToolResponse) -> str:
    """Extract the text part of a tool response."""
    if isinstance(response, str):
        return response
    return "\n".join(
        block.get("text", "") for block in response if block.get("type") == "text"
    )
