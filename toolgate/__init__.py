"""toolgate: approval-gated execution core for coding-agent tools."""

__version__ = "0.1.0"
