from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import bittensor as bt

from noderadar.errors import FetchError, ProbeError
from noderadar.geo import GeoResolver
from noderadar.http import JsonClient, join_url
from noderadar.probes import Probe, ProbeOutcome
from noderadar.schemas import Node, StreamingFeatures


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_block_time(raw: Any) -> datetime:
    """Parse Hyperion's `last_indexed_block_time`; naive values are UTC."""
    if not isinstance(raw, str) or not raw.strip():
        raise ProbeError(f"missing last_indexed_block_time: {raw!r}")
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1]
    try:
        ts = datetime.fromisoformat(text)
    except ValueError as e:
        raise ProbeError(f"bad last_indexed_block_time {raw!r}") from e
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _services(health_payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(health_payload, dict):
        raise ProbeError("health report is not an object")
    services = health_payload.get("health")
    if not isinstance(services, list) or not all(isinstance(s, dict) for s in services):
        raise ProbeError("health report has no service list")
    return services


def missing_blocks(services: List[Dict[str, Any]]) -> Any:
    """Elasticsearch's `missing_blocks`; an absent service or field counts as 0."""
    for service in services:
        if service.get("service") == "Elasticsearch":
            data = service.get("service_data")
            if not isinstance(data, dict):
                return 0
            return data.get("missing_blocks") or 0
    return 0


def streaming_features(health_payload: Dict[str, Any]) -> StreamingFeatures:
    features = health_payload.get("features")
    streaming = features.get("streaming") if isinstance(features, dict) else None
    if not isinstance(streaming, dict):
        return StreamingFeatures()
    return StreamingFeatures(
        enable=bool(streaming.get("enable")),
        traces=bool(streaming.get("traces")),
        deltas=bool(streaming.get("deltas")),
    )


class HyperionProbe(Probe):
    """Ledger-history probe: indexing lag, service status, missing blocks."""

    kind = "hyperion"

    def __init__(
        self,
        client: JsonClient,
        geo: GeoResolver,
        *,
        max_lag_s: float = 120.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        super().__init__(client, geo)
        self.max_lag_s = max_lag_s
        self._clock = clock or _utcnow

    async def probe(self, node: Node, timeout_s: float) -> ProbeOutcome:
        try:
            reason = await self._verify(node, timeout_s)
        except (FetchError, ProbeError) as e:
            bt.logging.debug(f"Hyperion node {node.url} probe failed: {e}")
            return ProbeOutcome(False, node)
        except Exception as e:
            bt.logging.warning(f"Unexpected error probing Hyperion node {node.url}: {e!r}")
            return ProbeOutcome(False, node)

        if isinstance(reason, str):
            bt.logging.debug(f"Hyperion node {node.url} is unhealthy: {reason}")
            return ProbeOutcome(False, node)

        enriched = await self._locate(reason)
        bt.logging.debug(
            f"Hyperion node {node.url} is healthy. Region: {enriched.region}, Country: {enriched.country}"
        )
        return ProbeOutcome(True, enriched)

    async def _verify(self, node: Node, timeout_s: float):
        """Return the node with streaming data on success, or a failure reason."""
        actions, health = await asyncio.gather(
            self.client.get_json(
                join_url(node.url, "/v2/history/get_actions"),
                params={"limit": 1},
                timeout_s=timeout_s,
            ),
            self.client.get_json(join_url(node.url, "/v2/health"), timeout_s=timeout_s),
        )
        if not isinstance(actions, dict):
            raise ProbeError("get_actions response is not an object")

        indexed_at = parse_block_time(actions.get("last_indexed_block_time"))
        lag_s = (self._clock() - indexed_at).total_seconds()
        if lag_s > self.max_lag_s:
            return f"indexing lag {lag_s:.0f}s exceeds {self.max_lag_s:.0f}s"

        services = _services(health)
        failing = [s.get("service") for s in services if s.get("status") != "OK"]
        if failing:
            return f"services not OK: {failing}"

        missing = missing_blocks(services)
        if missing != 0:
            return f"Elasticsearch missing_blocks={missing}"

        return node.model_copy(update={"streaming": streaming_features(health)})
