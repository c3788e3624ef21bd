from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

NodeKind = Literal["hyperion", "atomic"]
Network = Literal["mainnet", "testnet"]

NODE_KINDS: tuple = ("hyperion", "atomic")
NETWORKS: tuple = ("mainnet", "testnet")

UNKNOWN = "unknown"


class GeoLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    region: str = UNKNOWN
    country: str = UNKNOWN
    timezone: str = UNKNOWN


UNKNOWN_LOCATION = GeoLocation()


class StreamingFeatures(BaseModel):
    model_config = ConfigDict(frozen=True)

    enable: bool = False
    traces: bool = False
    deltas: bool = False


class Node(BaseModel):
    """
    One directory entry. Identity is `url` within a (kind, network) bucket.

    Instances are frozen; probes hand back an enriched copy instead of
    mutating the candidate they were given.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    kind: NodeKind
    network: Network

    region: str = UNKNOWN
    country: str = UNKNOWN
    timezone: str = UNKNOWN

    # Hyperion. `historyfull` comes from the directory as-is; `streaming`
    # is only filled in by a passing probe.
    historyfull: bool = False
    streaming: Optional[StreamingFeatures] = None

    # Atomic capability flags, set by the probe.
    atomicassets: bool = False
    atomicmarket: bool = False

    def with_location(self, location: GeoLocation) -> "Node":
        return self.model_copy(
            update={
                "region": location.region,
                "country": location.country,
                "timezone": location.timezone,
            }
        )


class NodeQuery(BaseModel):
    """A client request for nodes, after lenient parsing and defaulting."""

    kind: NodeKind = "hyperion"
    network: Network = "mainnet"
    count: int = 3

    historyfull: bool = True
    streaming: bool = True
    atomicassets: bool = True
    atomicmarket: bool = True


class AtomicCapabilities(BaseModel):
    atomicassets: bool = False
    atomicmarket: bool = False


class NodeDescriptor(BaseModel):
    """Wire shape of one node in the `/nodes` response."""

    url: str
    region: str
    country: str
    timezone: str
    historyfull: Optional[bool] = None
    streaming: Optional[StreamingFeatures] = None
    atomic: Optional[AtomicCapabilities] = None

    @classmethod
    def from_node(cls, node: Node) -> "NodeDescriptor":
        if node.kind == "hyperion":
            return cls(
                url=node.url,
                region=node.region,
                country=node.country,
                timezone=node.timezone,
                historyfull=node.historyfull,
                streaming=node.streaming or StreamingFeatures(),
            )
        return cls(
            url=node.url,
            region=node.region,
            country=node.country,
            timezone=node.timezone,
            atomic=AtomicCapabilities(
                atomicassets=node.atomicassets,
                atomicmarket=node.atomicmarket,
            ),
        )


class NodeCounts(BaseModel):
    hyperion: int = 0
    atomic: int = 0


class ServiceHealth(BaseModel):
    version: str
    status: Literal["healthy", "unhealthy"]
    nodes: NodeCounts


class SchedulerStatus(BaseModel):
    ok: bool = True
    state: str
    snapshot_version: int
    seconds_until_next_check: int
    candidates: NodeCounts
    healthy: NodeCounts
    warnings: List[str] = Field(default_factory=list)
