"""Client configuration.

ClientConfig can be built directly, from environment variables, or from a
YAML file. Environment variables:

    TOOLBRIDGE_REQUEST_TIMEOUT   default deadline for every request (seconds)
    TOOLBRIDGE_CALL_TIMEOUT      deadline for tools/call only
    TOOLBRIDGE_ENDPOINT_TIMEOUT  how long to wait for the endpoint announcement
    TOOLBRIDGE_CLIENT_NAME       clientInfo.name sent during initialize
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from .protocol.methods import (
    CLIENT_NAME,
    CLIENT_VERSION,
    METHOD_CALL_TOOL,
    PROTOCOL_VERSION,
)

DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass(frozen=True)
class TimeoutPolicy:
    """Per-method request deadlines with a shared default."""

    default: float = DEFAULT_REQUEST_TIMEOUT
    per_method: dict[str, float] = field(default_factory=dict)

    def for_method(self, method: str) -> float:
        return self.per_method.get(method, self.default)


@dataclass
class ClientConfig:
    """Configuration for ExtensionClient."""

    # Request deadlines
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    method_timeouts: dict[str, float] = field(default_factory=dict)

    # Connection setup
    endpoint_timeout: float = 30.0
    connect_timeout: float = 10.0
    headers: dict[str, str] = field(default_factory=dict)

    # Identity sent once during initialize
    client_name: str = CLIENT_NAME
    client_version: str = CLIENT_VERSION
    protocol_version: str = PROTOCOL_VERSION

    @property
    def timeouts(self) -> TimeoutPolicy:
        return TimeoutPolicy(default=self.request_timeout, per_method=dict(self.method_timeouts))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientConfig:
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def from_env(cls, base: ClientConfig | None = None) -> ClientConfig:
        """Apply TOOLBRIDGE_* environment variables on top of ``base``."""
        config = base or cls()
        values = asdict(config)

        if timeout := os.environ.get("TOOLBRIDGE_REQUEST_TIMEOUT"):
            values["request_timeout"] = float(timeout)
        if timeout := os.environ.get("TOOLBRIDGE_CALL_TIMEOUT"):
            values["method_timeouts"] = {
                **values["method_timeouts"],
                METHOD_CALL_TOOL: float(timeout),
            }
        if timeout := os.environ.get("TOOLBRIDGE_ENDPOINT_TIMEOUT"):
            values["endpoint_timeout"] = float(timeout)
        if name := os.environ.get("TOOLBRIDGE_CLIENT_NAME"):
            values["client_name"] = name

        return cls(**values)

    @classmethod
    def from_yaml(cls, path: str | Path) -> ClientConfig:
        """Load a config from a YAML file.

        The file holds the same keys as the dataclass, optionally nested
        under a top-level ``client`` key:

            client:
              request_timeout: 30
              method_timeouts:
                tools/call: 120
        """
        import yaml

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {path}")

        return cls.from_dict(data.get("client", data))
