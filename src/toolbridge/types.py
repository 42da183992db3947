"""Shared type definitions."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ConnectionState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    ERROR = "error"


class ServerInfo(BaseModel):
    """Informational part of the initialize result."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    protocol_version: str | None = Field(default=None, alias="protocolVersion")
    server_info: dict[str, Any] = Field(default_factory=dict, alias="serverInfo")
    capabilities: dict[str, Any] = Field(default_factory=dict)
    instructions: str | None = None

    @property
    def name(self) -> str | None:
        return self.server_info.get("name")

    @property
    def version(self) -> str | None:
        return self.server_info.get("version")
