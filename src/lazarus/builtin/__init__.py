"""Builtin store, engine and CLI adapters."""
