"""Pydantic contracts for tunnel config documents and the response envelope."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tunnel_config.errors import PlatformError


class ProviderErrorReport(BaseModel):
    """Failure embedded by a config provider under the top-level `error` key."""

    model_config = ConfigDict(extra="ignore")

    message: str
    details: str | None = None


class TunnelConfigRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Held as the parsed value tree and re-emitted as-is.
    transport: Any = None
    error: ProviderErrorReport | None = None


class TunnelConfigResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    first_hop: str = Field(default="", alias="firstHop")
    transport: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


@dataclass(frozen=True)
class InvokeMethodResult:
    """Outcome of a single call: exactly one of `value` or `error`."""

    value: str | None = None
    error: PlatformError | None = None

    def __post_init__(self) -> None:
        if (self.value is None) == (self.error is None):
            raise ValueError("InvokeMethodResult requires exactly one of value or error")

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error.to_dict()}
        return {"value": self.value}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
