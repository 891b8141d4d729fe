from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ProtocolKind(str, Enum):
    TASK_POLL = "task_poll"
    TRANSACTION_POLL = "transaction_poll"
    JSONRPC_TOOL = "jsonrpc_tool"


METHOD_PROTOCOLS: dict[str, ProtocolKind] = {
    "API": ProtocolKind.TASK_POLL,
    "API_TASK": ProtocolKind.TASK_POLL,
    "API_TRANSACTION": ProtocolKind.TRANSACTION_POLL,
    "MCP": ProtocolKind.JSONRPC_TOOL,
}

DEFAULT_JSONRPC_TIMEOUT_SECONDS = 60


class TargetConfig(BaseModel):
    """A stored back-end configuration (``config-<id>.json``)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    method: str
    api_key: str = Field(default="", alias="apiKey")
    url: str
    timeout: int | None = Field(default=None, ge=10, le=300)

    @field_validator("method")
    @classmethod
    def _known_method(cls, value: str) -> str:
        method = value.strip().upper()
        if method not in METHOD_PROTOCOLS:
            raise ValueError(
                f"Unsupported method '{value}'. Choose from: {sorted(METHOD_PROTOCOLS)}"
            )
        return method

    @model_validator(mode="after")
    def _default_timeout(self) -> "TargetConfig":
        if self.timeout is None and self.protocol is ProtocolKind.JSONRPC_TOOL:
            self.timeout = DEFAULT_JSONRPC_TIMEOUT_SECONDS
        return self

    @property
    def protocol(self) -> ProtocolKind:
        return METHOD_PROTOCOLS[self.method]

    def to_target(self) -> "Target":
        return Target(
            id=self.id,
            protocol=self.protocol,
            base_url=self.url,
            credential=self.api_key,
            timeout_seconds=self.timeout,
        )


class Target(BaseModel):
    """A resolved back-end: protocol, endpoint, credential and timeout."""

    model_config = ConfigDict(frozen=True)

    id: str
    protocol: ProtocolKind
    base_url: str
    credential: str = ""
    timeout_seconds: int | None = None
