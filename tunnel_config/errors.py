"""Structured platform errors shared by the normalizer and transport builders."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    INVALID_CONFIG = "InvalidConfig"
    PROVIDER_ERROR = "ProviderError"
    INTERNAL_ERROR = "InternalError"


class PlatformError(Exception):
    """Failure carrying a machine-readable code, a message and optional details."""

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value if isinstance(code, ErrorCode) else str(code)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload

    def __repr__(self) -> str:
        return f"PlatformError(code={self.code!r}, message={self.message!r})"
