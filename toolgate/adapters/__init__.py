"""Adapters package - concrete collaborators for the tool engines.

Approval bus and console channel for operators, shell-backed
terminals, and a file-backed diff view.
"""
from __future__ import annotations

__all__ = [
    "ApprovalBus",
    "ConsoleApprovalChannel",
    "FileDiffViewProvider",
    "ShellTerminalManager",
]

from toolgate.adapters.approval_bus import ApprovalBus
from toolgate.adapters.console import ConsoleApprovalChannel
from toolgate.adapters.diff_view import FileDiffViewProvider
from toolgate.adapters.terminal import ShellTerminalManager
