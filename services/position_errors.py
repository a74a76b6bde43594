from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class PositionError(ValueError):
    """Validation, conflict or lookup failure with a stable machine-readable code."""

    def __init__(self, code: str, message: str, allowed: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.allowed = list(allowed) if allowed is not None else None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.allowed is not None:
            body["allowed"] = self.allowed
        return body
