from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import bittensor as bt

from noderadar.geo import GeoResolver
from noderadar.http import JsonClient, join_url
from noderadar.probes import Probe, ProbeOutcome
from noderadar.schemas import Node


def _succeeded(payload: Any) -> bool:
    return isinstance(payload, dict) and payload.get("success") is True


def _first_field(payload: Any, field: str) -> Optional[Any]:
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    value = data[0].get(field)
    return value if value not in (None, "") else None


class AtomicProbe(Probe):
    """
    Asset-catalogue probe.

    Two independent chains each gate one capability flag:
      - atomicassets: a reference collection, its newest template and the
        newest asset must all load, then that template and asset by id.
      - atomicmarket: the newest market listing of a reference account, then
        that listing by id.

    The node is healthy when at least one flag is set.
    """

    kind = "atomic"

    def __init__(
        self,
        client: JsonClient,
        geo: GeoResolver,
        *,
        collection: str = "kogsofficial",
        market_owner: str = "sentnlagents",
    ) -> None:
        super().__init__(client, geo)
        self.collection = collection
        self.market_owner = market_owner

    async def _get(self, node: Node, path: str, timeout_s: float, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.client.get_json(join_url(node.url, path), params=params, timeout_s=timeout_s)

    async def probe(self, node: Node, timeout_s: float) -> ProbeOutcome:
        atomicassets, atomicmarket = await asyncio.gather(
            self._guarded("atomicassets", self.check_atomicassets, node, timeout_s),
            self._guarded("atomicmarket", self.check_atomicmarket, node, timeout_s),
        )
        checked = node.model_copy(update={"atomicassets": atomicassets, "atomicmarket": atomicmarket})

        if not (atomicassets or atomicmarket):
            bt.logging.debug(f"Atomic node {node.url} is unhealthy. Neither atomicassets nor atomicmarket are available.")
            return ProbeOutcome(False, checked)

        enriched = await self._locate(checked)
        bt.logging.debug(
            f"Atomic node {node.url} is healthy. Atomicassets: {atomicassets}, Atomicmarket: {atomicmarket}"
        )
        return ProbeOutcome(True, enriched)

    async def _guarded(self, name: str, check, node: Node, timeout_s: float) -> bool:
        try:
            return bool(await check(node, timeout_s))
        except Exception as e:
            bt.logging.debug(f"Atomic node {node.url} - {name} check failed: {e}")
            return False

    async def check_atomicassets(self, node: Node, timeout_s: float) -> bool:
        collection, templates, assets = await asyncio.gather(
            self._get(node, f"/atomicassets/v1/collections/{self.collection}", timeout_s),
            self._get(
                node,
                "/atomicassets/v1/templates",
                timeout_s,
                params={
                    "collection_name": self.collection,
                    "has_assets": "true",
                    "page": 1,
                    "limit": 1,
                    "order": "desc",
                    "sort": "created",
                },
            ),
            self._get(
                node,
                "/atomicassets/v1/assets",
                timeout_s,
                params={"page": 1, "limit": 1, "order": "desc", "sort": "asset_id"},
            ),
        )
        if not (_succeeded(collection) and _succeeded(templates) and _succeeded(assets)):
            return False

        template_id = _first_field(templates, "template_id")
        asset_id = _first_field(assets, "asset_id")
        if template_id is None or asset_id is None:
            return False

        template, asset = await asyncio.gather(
            self._get(node, f"/atomicassets/v1/templates/{self.collection}/{template_id}", timeout_s),
            self._get(node, f"/atomicassets/v1/assets/{asset_id}", timeout_s),
        )
        return _succeeded(template) and _succeeded(asset)

    async def check_atomicmarket(self, node: Node, timeout_s: float) -> bool:
        listing = await self._get(
            node,
            "/atomicmarket/v1/assets",
            timeout_s,
            params={"owner": self.market_owner, "limit": 1},
        )
        if not _succeeded(listing):
            return False
        asset_id = _first_field(listing, "asset_id")
        if asset_id is None:
            return False
        detail = await self._get(node, f"/atomicmarket/v1/assets/{asset_id}", timeout_s)
        return _succeeded(detail)
