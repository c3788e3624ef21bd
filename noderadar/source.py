from __future__ import annotations

from typing import Any, Dict, List, Optional

import bittensor as bt

from noderadar.errors import FetchError, NodeSourceError
from noderadar.http import JsonClient
from noderadar.schemas import NETWORKS, Node, NodeKind


class NodeSource:
    """Client for the public node directory (`/api/nodes/<kind>`)."""

    def __init__(
        self,
        directory_host: str,
        *,
        client: Optional[JsonClient] = None,
        timeout_s: float = 10.0,
    ) -> None:
        self.directory_host = directory_host.strip("/")
        self.client = client or JsonClient()
        self.timeout_s = timeout_s

    async def _fetch_with_fallback(self, path: str) -> Any:
        https_url = f"https://{self.directory_host}{path}"
        try:
            return await self.client.get_json(https_url, timeout_s=self.timeout_s)
        except FetchError as e:
            bt.logging.warning(f"HTTPS request failed for {https_url} ({e.reason}), falling back to HTTP")
        http_url = f"http://{self.directory_host}{path}"
        try:
            return await self.client.get_json(http_url, timeout_s=self.timeout_s)
        except FetchError as e:
            raise NodeSourceError(f"node directory unreachable: {e}") from e

    def close(self) -> None:
        self.client.close()

    async def fetch(self, kind: NodeKind) -> List[Node]:
        data = await self._fetch_with_fallback(f"/api/nodes/{kind}")
        if not isinstance(data, list):
            raise NodeSourceError(f"node directory returned {type(data).__name__} for {kind}, expected a list")
        return parse_node_list(kind, data)


def parse_node_list(kind: NodeKind, items: List[Any]) -> List[Node]:
    out: List[Node] = []
    seen: set = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        node = _parse_item(kind, item)
        if node is None:
            continue
        key = (node.network, node.url)
        if key in seen:
            continue
        seen.add(key)
        out.append(node)
    return out


def _parse_item(kind: NodeKind, item: Dict[str, Any]) -> Optional[Node]:
    network = item.get("network")
    url = (item.get("https_node_url") or "").strip()
    if network not in NETWORKS or not url:
        return None
    if kind == "hyperion":
        return Node(url=url, kind=kind, network=network, historyfull=bool(item.get("historyfull")))
    return Node(url=url, kind=kind, network=network)
