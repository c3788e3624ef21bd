from __future__ import annotations

from typing import Iterable, List

from noderadar.registry import Snapshot
from noderadar.schemas import UNKNOWN, GeoLocation, Node, NodeQuery


def _matches(value: str, wanted: str) -> bool:
    # An unresolved requester is near nobody.
    return bool(wanted) and wanted != UNKNOWN and value == wanted


def matches_filters(node: Node, query: NodeQuery) -> bool:
    if query.kind == "hyperion":
        streaming = node.streaming.enable if node.streaming is not None else False
        return node.historyfull == query.historyfull and streaming == query.streaming

    if query.atomicassets and query.atomicmarket:
        return node.atomicassets and node.atomicmarket
    if query.atomicassets:
        return node.atomicassets
    if query.atomicmarket:
        return node.atomicmarket
    return True


def rank_by_proximity(nodes: Iterable[Node], requester: GeoLocation) -> List[Node]:
    """Same country first, then same region; otherwise input order (sorted() is stable)."""
    return sorted(
        nodes,
        key=lambda n: (
            not _matches(n.country, requester.country),
            not _matches(n.region, requester.region),
        ),
    )


def select_nodes(snapshot: Snapshot, query: NodeQuery, requester: GeoLocation) -> List[Node]:
    """
    Nearest healthy nodes for a query, read from one snapshot.

    An empty list means nothing matched; it is a valid answer, not an error.
    """
    candidates = [n for n in snapshot.healthy(query.kind, query.network) if matches_filters(n, query)]
    return rank_by_proximity(candidates, requester)[: max(0, query.count)]
