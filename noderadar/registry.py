"""In-memory candidate lists and the published healthy-node snapshot.

The scheduler is the only writer. It builds a complete :class:`Snapshot`
per cycle and swaps the registry's reference in one assignment; readers take
that reference once and work from it, so they see either the old cycle or the
new one for every bucket, never a mix.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple

from noderadar.schemas import NETWORKS, NODE_KINDS, Node

Bucket = Tuple[str, str]


def all_buckets() -> Tuple[Bucket, ...]:
    return tuple((kind, network) for kind in NODE_KINDS for network in NETWORKS)


def _freeze(buckets: Mapping[Bucket, Iterable[Node]]) -> Mapping[Bucket, Tuple[Node, ...]]:
    return MappingProxyType({key: tuple(nodes) for key, nodes in buckets.items()})


@dataclass(frozen=True)
class Snapshot:
    version: int = 0
    published_at: float = 0.0
    buckets: Mapping[Bucket, Tuple[Node, ...]] = field(default_factory=lambda: MappingProxyType({}))

    def healthy(self, kind: str, network: str) -> Tuple[Node, ...]:
        return self.buckets.get((kind, network), ())

    def count(self, kind: str) -> int:
        return sum(len(self.healthy(kind, network)) for network in NETWORKS)


class Registry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = Snapshot()
        self._candidates: Mapping[Bucket, Tuple[Node, ...]] = _freeze({})

    def snapshot(self) -> Snapshot:
        return self._snapshot

    def publish(self, buckets: Mapping[Bucket, Iterable[Node]], *, now: Optional[float] = None) -> Snapshot:
        """Replace every healthy bucket at once and return the new snapshot."""
        frozen = _freeze({key: buckets.get(key, ()) for key in all_buckets()})
        with self._lock:
            snap = Snapshot(
                version=self._snapshot.version + 1,
                published_at=time.time() if now is None else now,
                buckets=frozen,
            )
            self._snapshot = snap
        return snap

    def candidates(self, kind: str, network: str) -> Tuple[Node, ...]:
        return self._candidates.get((kind, network), ())

    def candidate_buckets(self) -> Mapping[Bucket, Tuple[Node, ...]]:
        return self._candidates

    def has_empty_bucket(self) -> bool:
        return any(not self.candidates(kind, network) for kind, network in all_buckets())

    def replace_candidates(self, kind: str, nodes: Iterable[Node]) -> Dict[str, int]:
        """Swap in a freshly fetched list for every network of *kind*."""
        by_network: Dict[str, list] = {network: [] for network in NETWORKS}
        for node in nodes:
            if node.kind == kind and node.network in by_network:
                by_network[node.network].append(node)
        with self._lock:
            merged = dict(self._candidates)
            for network, items in by_network.items():
                merged[(kind, network)] = tuple(items)
            self._candidates = _freeze(merged)
        return {network: len(items) for network, items in by_network.items()}
