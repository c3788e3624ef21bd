from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from noderadar import __version__
from noderadar.utils.env import _env_float, _env_int, _env_str


@dataclass(frozen=True)
class ServiceConfig:
    host: str = "0.0.0.0"
    port: int = 3000

    # Cadences, in seconds.
    health_check_interval_s: float = 520.0
    node_list_refresh_interval_s: float = 24 * 60 * 60
    heartbeat_interval_s: float = 10.0

    probe_timeout_s: float = 5.0
    max_in_flight_probes: int = 32
    max_indexing_lag_s: float = 120.0

    # Node directory host, without scheme (https is tried before http).
    directory_host: str = "wax.sengine.co"
    geoip_database_path: Optional[str] = None

    # Reference objects the atomic probe looks up on every node.
    atomic_collection: str = "kogsofficial"
    atomic_market_owner: str = "sentnlagents"

    min_healthy_nodes: int = 3
    default_count: int = 3
    api_version: str = __version__


def _die(msg: str) -> None:
    raise SystemExit(f"[noderadar] {msg}")


def load_service_env() -> ServiceConfig:
    """
    Load service configuration from env/.env with strict validation.

    Every setting has a default, so an empty environment yields a runnable
    service (with geo ranking disabled until a GeoLite2 database is set).
    """
    defaults = ServiceConfig()

    port = _env_int("NODERADAR_PORT", defaults.port)
    if not 0 < port < 65536:
        _die(f"NODERADAR_PORT must be a TCP port. Got: {port!r}")

    health_interval = _env_float("NODERADAR_HEALTH_CHECK_INTERVAL_S", defaults.health_check_interval_s)
    refresh_interval = _env_float("NODERADAR_NODE_LIST_REFRESH_INTERVAL_S", defaults.node_list_refresh_interval_s)
    heartbeat_interval = _env_float("NODERADAR_HEARTBEAT_INTERVAL_S", defaults.heartbeat_interval_s)
    probe_timeout = _env_float("NODERADAR_PROBE_TIMEOUT_S", defaults.probe_timeout_s)
    max_lag = _env_float("NODERADAR_MAX_INDEXING_LAG_S", defaults.max_indexing_lag_s)
    for name, value in (
        ("NODERADAR_HEALTH_CHECK_INTERVAL_S", health_interval),
        ("NODERADAR_NODE_LIST_REFRESH_INTERVAL_S", refresh_interval),
        ("NODERADAR_HEARTBEAT_INTERVAL_S", heartbeat_interval),
        ("NODERADAR_PROBE_TIMEOUT_S", probe_timeout),
        ("NODERADAR_MAX_INDEXING_LAG_S", max_lag),
    ):
        if value <= 0:
            _die(f"{name} must be positive. Got: {value!r}")

    max_in_flight = _env_int("NODERADAR_MAX_IN_FLIGHT_PROBES", defaults.max_in_flight_probes)
    if max_in_flight < 1:
        _die(f"NODERADAR_MAX_IN_FLIGHT_PROBES must be >= 1. Got: {max_in_flight!r}")

    directory_host = _env_str("NODERADAR_DIRECTORY_HOST", defaults.directory_host).rstrip("/")
    if not directory_host or "://" in directory_host:
        _die(f"NODERADAR_DIRECTORY_HOST must be a bare host[/path] without scheme. Got: {directory_host!r}")

    min_healthy = _env_int("NODERADAR_MIN_HEALTHY_NODES", defaults.min_healthy_nodes)
    default_count = _env_int("NODERADAR_DEFAULT_COUNT", defaults.default_count)
    if default_count < 1:
        _die(f"NODERADAR_DEFAULT_COUNT must be >= 1. Got: {default_count!r}")

    return ServiceConfig(
        host=_env_str("NODERADAR_HOST", defaults.host) or defaults.host,
        port=port,
        health_check_interval_s=health_interval,
        node_list_refresh_interval_s=refresh_interval,
        heartbeat_interval_s=heartbeat_interval,
        probe_timeout_s=probe_timeout,
        max_in_flight_probes=max_in_flight,
        max_indexing_lag_s=max_lag,
        directory_host=directory_host,
        geoip_database_path=_env_str("NODERADAR_GEOIP_DATABASE", "") or None,
        atomic_collection=_env_str("NODERADAR_ATOMIC_COLLECTION", defaults.atomic_collection) or defaults.atomic_collection,
        atomic_market_owner=_env_str("NODERADAR_ATOMIC_MARKET_OWNER", defaults.atomic_market_owner) or defaults.atomic_market_owner,
        min_healthy_nodes=max(0, min_healthy),
        default_count=default_count,
    )
