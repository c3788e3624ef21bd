"""Kind-specific health probes and the kind -> probe registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Dict, NamedTuple, Optional

from noderadar.geo import GeoResolver, hostname_of
from noderadar.http import JsonClient
from noderadar.schemas import NODE_KINDS, Node, NodeKind

if TYPE_CHECKING:
    from noderadar.config import ServiceConfig


class ProbeOutcome(NamedTuple):
    healthy: bool
    node: Node


class Probe(ABC):
    """Decides whether a single node is healthy and enriches it.

    Implementations must not raise: every network or payload problem is
    folded into an unhealthy outcome (or a false capability flag).
    """

    kind: NodeKind

    def __init__(self, client: JsonClient, geo: GeoResolver) -> None:
        self.client = client
        self.geo = geo

    @abstractmethod
    async def probe(self, node: Node, timeout_s: float) -> ProbeOutcome:
        """Probe *node* and return the verdict with the enriched node."""

    async def _locate(self, node: Node) -> Node:
        # Geo is decoration; a failed lookup leaves the "unknown" sentinels.
        location = await self.geo.resolve(hostname_of(node.url))
        return node.with_location(location)


def build_probes(
    config: "ServiceConfig",
    client: JsonClient,
    geo: GeoResolver,
) -> Dict[str, Probe]:
    """Instantiate one probe per node kind."""
    return {kind: get_probe(kind, config, client, geo) for kind in NODE_KINDS}


def get_probe(
    kind: str,
    config: Optional["ServiceConfig"],
    client: JsonClient,
    geo: GeoResolver,
) -> Probe:
    # Deferred to keep the concrete probes importing from this module.
    from noderadar.config import ServiceConfig
    from noderadar.probes.atomic import AtomicProbe
    from noderadar.probes.hyperion import HyperionProbe

    config = config or ServiceConfig()
    if kind == "hyperion":
        return HyperionProbe(client, geo, max_lag_s=config.max_indexing_lag_s)
    if kind == "atomic":
        return AtomicProbe(
            client,
            geo,
            collection=config.atomic_collection,
            market_owner=config.atomic_market_owner,
        )
    known = ", ".join(NODE_KINDS)
    raise ValueError(f"Unknown node kind {kind!r}. Known kinds: {known}")
