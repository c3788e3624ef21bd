from __future__ import annotations

from contextlib import asynccontextmanager
from typing import List, Optional

import bittensor as bt
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from noderadar.config import ServiceConfig
from noderadar.geo import GeoResolver
from noderadar.http import JsonClient
from noderadar.probes import build_probes
from noderadar.registry import Registry
from noderadar.scheduler import HealthScheduler
from noderadar.schemas import (
    NETWORKS,
    NODE_KINDS,
    NodeCounts,
    NodeDescriptor,
    NodeQuery,
    SchedulerStatus,
    ServiceHealth,
)
from noderadar.selector import select_nodes
from noderadar.source import NodeSource
from noderadar.utils.env import parse_bool


def _parse_count(raw: Optional[str], default: int) -> int:
    try:
        count = int(str(raw).strip()) if raw is not None else default
    except ValueError:
        return default
    return count if count > 0 else default


def build_scheduler(config: ServiceConfig, registry: Registry, geo: GeoResolver) -> HealthScheduler:
    # Each probe issues up to four concurrent calls.
    client = JsonClient(max_workers=config.max_in_flight_probes * 4)
    source = NodeSource(config.directory_host, client=client)
    probes = build_probes(config, client, geo)
    return HealthScheduler(registry, source, probes, config=config)


def create_app(
    config: Optional[ServiceConfig] = None,
    *,
    registry: Optional[Registry] = None,
    geo: Optional[GeoResolver] = None,
    scheduler: Optional[HealthScheduler] = None,
    start_scheduler: bool = True,
) -> FastAPI:
    config = config or ServiceConfig()
    registry = registry or Registry()
    geo = geo or GeoResolver(config.geoip_database_path, dns_timeout_s=config.probe_timeout_s)
    scheduler = scheduler or build_scheduler(config, registry, geo)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_scheduler:
            bt.logging.info(
                f"Starting health scheduler (interval={config.health_check_interval_s:.0f}s, "
                f"geo={'on' if geo.enabled else 'off'})"
            )
            scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()
            geo.close()

    app = FastAPI(title="noderadar WAX node directory", version=config.api_version, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.config = config
    app.state.registry = registry
    app.state.geo = geo
    app.state.scheduler = scheduler

    def node_query(
        type: Optional[str] = None,  # noqa: A002 - public query parameter name
        network: Optional[str] = None,
        count: Optional[str] = None,
        historyfull: Optional[str] = None,
        streaming: Optional[str] = None,
        atomicassets: Optional[str] = None,
        atomicmarket: Optional[str] = None,
    ) -> NodeQuery:
        kind = (type or "").strip().lower()
        net = (network or "").strip().lower()
        return NodeQuery(
            kind=kind if kind in NODE_KINDS else "hyperion",
            network=net if net in NETWORKS else "mainnet",
            count=_parse_count(count, config.default_count),
            historyfull=parse_bool(historyfull, True),
            streaming=parse_bool(streaming, True),
            atomicassets=parse_bool(atomicassets, True),
            atomicmarket=parse_bool(atomicmarket, True),
        )

    @app.get("/nodes", response_model=List[NodeDescriptor], response_model_exclude_none=True)
    def nodes(request: Request, query: NodeQuery = Depends(node_query)):
        client_ip = request.client.host if request.client else None
        requester = geo.lookup_ip(client_ip)
        picked = select_nodes(registry.snapshot(), query, requester)
        if not picked:
            raise HTTPException(
                status_code=503,
                detail=f"No healthy {query.kind} nodes available for {query.network} with the specified filters.",
            )
        return [NodeDescriptor.from_node(n) for n in picked]

    @app.get("/health", response_model=ServiceHealth)
    def health():
        snap = registry.snapshot()
        counts = NodeCounts(hyperion=snap.count("hyperion"), atomic=snap.count("atomic"))
        healthy = counts.hyperion >= config.min_healthy_nodes and counts.atomic >= config.min_healthy_nodes
        return ServiceHealth(
            version=config.api_version,
            status="healthy" if healthy else "unhealthy",
            nodes=counts,
        )

    @app.get("/healthz", response_model=SchedulerStatus)
    def healthz():
        snap = registry.snapshot()
        candidates = NodeCounts(
            **{kind: sum(len(registry.candidates(kind, network)) for network in NETWORKS) for kind in NODE_KINDS}
        )
        warnings: List[str] = []
        if snap.version == 0:
            warnings.append("no health check has completed yet")
        if not geo.enabled:
            warnings.append("geoip database not configured; proximity ranking disabled")
        return SchedulerStatus(
            state=scheduler.state.value,
            snapshot_version=snap.version,
            seconds_until_next_check=scheduler.seconds_until_next_check(),
            candidates=candidates,
            healthy=NodeCounts(hyperion=snap.count("hyperion"), atomic=snap.count("atomic")),
            warnings=warnings,
        )

    return app
