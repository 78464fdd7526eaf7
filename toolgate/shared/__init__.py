"""Shared helpers used by the engine and the adapters."""
