"""Diagnostics returned alongside parsed parts."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict

__all__ = ["ParseIssue", "ParseStats"]


@dataclass(frozen=True)
class ParseIssue:
    """A line or row that could not become a part.

    ``location`` is ``"line"`` for text input and ``"row"`` for tables so the
    serialised form reads ``{"line": 3, ...}`` or ``{"row": 5, ...}``.
    """

    position: int
    text: str
    message: str
    location: str = "line"

    def as_dict(self) -> Dict[str, Any]:
        return {self.location: self.position, "text": self.text, "message": self.message}


@dataclass
class ParseStats:
    total_lines: int = 0
    parsed_lines: int = 0
    failed_lines: int = 0
    total_parts: int = 0
    total_pieces: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)
