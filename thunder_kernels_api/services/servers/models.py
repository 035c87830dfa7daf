"""Value types shared by the server provider, the gateway and the tracker."""

import enum
import typing as t
from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class ComputeTier:
    """A class of remote kernel server, one per GPU type."""

    id: str
    label: str
    gpu_type: str


@dataclass(frozen=True)
class ServerCollection:
    """A named group of tiers the host presents as one server collection."""

    id: str
    label: str
    tiers: t.Tuple[ComputeTier, ...]
    documentation: t.Optional[str] = None


@dataclass(frozen=True)
class ConnectionOptions:
    append_token: bool = True
    websocket_disable_compression: bool = True
    # seconds
    websocket_timeout: float = 180.0


@dataclass(frozen=True)
class ConnectionInfo:
    base_url: str
    token: str
    options: ConnectionOptions = field(default_factory=ConnectionOptions)


@dataclass(frozen=True)
class ServerDescriptor:
    """A server as seen by the host.

    ``connection_info`` stays ``None`` until the server has been resolved.
    """

    id: str
    label: str
    connection_info: t.Optional[ConnectionInfo] = None

    @classmethod
    def from_tier(cls, tier: ComputeTier) -> "ServerDescriptor":
        return cls(id=tier.id, label=tier.label)

    def with_connection(self, info: ConnectionInfo) -> "ServerDescriptor":
        return replace(self, connection_info=info)


@dataclass(frozen=True)
class SessionConnectionData:
    """What the control API hands back for a started session."""

    base_url: str
    token: str


@dataclass(frozen=True)
class SessionHandle:
    """A live session kept around until it has been torn down."""

    server_id: str
    base_url: str
    token: str


class ServerState(str, enum.Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


THUNDER_DOCUMENTATION = "https://docs.thundercompute.com/"

T4_TIER = ComputeTier(
    id="thunder-compute-t4",
    label="Thunder Compute (T4) - Cost-effective for inference and development",
    gpu_type="t4",
)

A100_TIER = ComputeTier(
    id="thunder-compute-a100",
    label="Thunder Compute (A100) - High-performance training and inference",
    gpu_type="a100",
)

T4_COLLECTION = ServerCollection(
    id="thunder-compute-t4",
    label="Thunder Compute T4 Server",
    tiers=(T4_TIER,),
    documentation=THUNDER_DOCUMENTATION,
)

A100_COLLECTION = ServerCollection(
    id="thunder-compute-a100",
    label="Thunder Compute A100 Server",
    tiers=(A100_TIER,),
    documentation=THUNDER_DOCUMENTATION,
)

BUILTIN_COLLECTIONS = (A100_COLLECTION, T4_COLLECTION)
