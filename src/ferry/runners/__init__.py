from __future__ import annotations

from .claude import DEFAULT_MODEL, ClaudeCommand

__all__ = ["DEFAULT_MODEL", "ClaudeCommand"]
