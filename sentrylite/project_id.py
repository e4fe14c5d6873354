"""Project identifiers as they appear in DSNs and API paths."""

from __future__ import annotations

import json
from dataclasses import dataclass


class ParseProjectIdError(ValueError):
    """Raised when a project ID cannot be parsed from a string."""

    def __init__(self, message: str = "empty or missing project id") -> None:
        super().__init__(message)


@dataclass(frozen=True, order=True)
class ProjectId:
    """A project ID, kept as its already URL-encoded string form."""

    value: str

    @classmethod
    def parse(cls, text: str) -> ProjectId:
        """Parse a project ID, rejecting empty values."""
        if not text:
            raise ParseProjectIdError()
        return cls(text)

    def __str__(self) -> str:
        return self.value

    def to_json(self) -> str:
        """Serialize to a JSON string literal."""
        return json.dumps(self.value, ensure_ascii=False)

    @classmethod
    def from_json(cls, data: str | bytes) -> ProjectId:
        """Deserialize from a JSON string literal."""
        value = json.loads(data)
        if not isinstance(value, str):
            raise ValueError(f"invalid type: expected a string, got {type(value).__name__}")
        return cls(value)