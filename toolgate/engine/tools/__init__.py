"""Approval-gated tool engines."""
from __future__ import annotations

from .base import BaseTool
from .execute_command import ExecuteCommandTool
from .write_file import WriteFileTool, preprocess_content

__all__ = [
    "BaseTool",
    "ExecuteCommandTool",
    "WriteFileTool",
    "preprocess_content",
]
