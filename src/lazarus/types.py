"""Framework-neutral data aliases."""

from __future__ import annotations

from typing import Any, TypeAlias

Envelope: TypeAlias = Any
Options: TypeAlias = dict[str, Any]
WireObject: TypeAlias = dict[str, Any]
