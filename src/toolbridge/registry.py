"""Capability registry of discovered remote tools.

The registry is a snapshot: each handshake or refresh builds a new
read-only mapping and swaps it in, so readers always see a complete
listing, old or new.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ProtocolError

logger = logging.getLogger(__name__)


class ToolDescriptor(BaseModel):
    """A remote tool as announced by tools/list.

    Example:
        {
            "name": "grade_page",
            "description": "Grade one scanned page",
            "inputSchema": {
                "type": "object",
                "properties": {"page": {"type": "integer"}},
                "required": ["page"]
            }
        }
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    name: str = Field(min_length=1)
    description: str | None = None
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object"},
        alias="inputSchema",
    )

    @property
    def required_parameters(self) -> list[str]:
        return list(self.input_schema.get("required", []))

    @property
    def parameters(self) -> dict[str, Any]:
        return dict(self.input_schema.get("properties", {}))


def parse_tool_listing(result: Any) -> list[ToolDescriptor]:
    """Validate a tools/list result.

    Raises:
        ProtocolError: If the result is not ``{"tools": [...]}`` of descriptors
    """
    if not isinstance(result, dict) or not isinstance(result.get("tools"), list):
        raise ProtocolError(f"Unexpected tools/list result: {str(result)[:100]}")

    try:
        return [ToolDescriptor.model_validate(tool) for tool in result["tools"]]
    except ValidationError as e:
        raise ProtocolError(f"Malformed tool descriptor: {e}") from e


class CapabilityRegistry:
    """Name -> ToolDescriptor mapping, replaced wholesale."""

    def __init__(self) -> None:
        self._tools: MappingProxyType[str, ToolDescriptor] = MappingProxyType({})

    def replace(self, descriptors: Iterable[ToolDescriptor]) -> None:
        tools: dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in tools:
                logger.warning(f"Duplicate tool name in listing: {descriptor.name}")
            tools[descriptor.name] = descriptor
        self._tools = MappingProxyType(tools)
        logger.info(f"Registry updated: {len(tools)} tool(s)")

    def clear(self) -> None:
        self._tools = MappingProxyType({})

    def snapshot(self) -> MappingProxyType[str, ToolDescriptor]:
        return self._tools

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def tools(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
