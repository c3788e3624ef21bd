import asyncio
import socket
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest
import requests
import uvicorn
from fastapi import FastAPI
from fastapi.testclient import TestClient

from noderadar.app import build_scheduler, create_app
from noderadar.config import ServiceConfig
from noderadar.geo import GeoResolver
from noderadar.registry import Registry


def _free_port() -> int:
    s = socket.socket()
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


def _wait_ok(url: str, timeout_s: float = 10.0) -> None:
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        try:
            r = requests.get(url, timeout=1.0)
            if r.status_code == 200:
                return
        except Exception:
            pass
        time.sleep(0.1)
    raise RuntimeError(f"timeout waiting for {url}")


def _run_uvicorn(app: FastAPI, port: int) -> uvicorn.Server:
    config = uvicorn.Config(app, host="127.0.0.1", port=port, log_level="warning")
    server = uvicorn.Server(config)
    t = threading.Thread(target=server.run, daemon=False)
    t.start()
    server._thread = t  # type: ignore[attr-defined]  # test-only convenience
    return server


def _fake_wax(port: int) -> FastAPI:
    """One server playing the node directory plus every node it lists."""
    base = f"http://127.0.0.1:{port}"
    wax = FastAPI()

    @wax.get("/ping")
    def ping():
        return {"ok": True}

    @wax.get("/api/nodes/hyperion")
    def hyperion_nodes():
        return [
            {"network": "mainnet", "https_node_url": f"{base}/fresh", "historyfull": True},
            {"network": "mainnet", "https_node_url": f"{base}/stale", "historyfull": True},
            {"network": "testnet", "https_node_url": f"{base}/fresh", "historyfull": False},
        ]

    @wax.get("/api/nodes/atomic")
    def atomic_nodes():
        return [
            {"network": "mainnet", "https_node_url": f"{base}/market"},
            {"network": "testnet", "https_node_url": f"{base}/down"},
        ]

    @wax.get("/{node}/v2/history/get_actions")
    def get_actions(node: str, limit: int = 1):
        lag = 5 if node == "fresh" else 600
        ts = (datetime.now(timezone.utc) - timedelta(seconds=lag)).replace(tzinfo=None)
        return {"last_indexed_block_time": ts.isoformat(timespec="milliseconds"), "actions": []}

    @wax.get("/{node}/v2/health")
    def health(node: str):
        return {
            "health": [
                {"service": "RabbitMq", "status": "OK"},
                {"service": "Elasticsearch", "status": "OK", "service_data": {"missing_blocks": 0}},
            ],
            "features": {"streaming": {"enable": True, "traces": False, "deltas": True}},
        }

    @wax.get("/market/atomicmarket/v1/assets")
    def market_listing(owner: str, limit: int = 1):
        return {"success": True, "data": [{"asset_id": "1099500000001", "owner": owner}]}

    @wax.get("/market/atomicmarket/v1/assets/{asset_id}")
    def market_asset(asset_id: str):
        return {"success": True, "data": {"asset_id": asset_id}}

    return wax


@pytest.mark.integration
def test_health_cycle_against_live_http_nodes():
    port = _free_port()
    server = _run_uvicorn(_fake_wax(port), port)
    try:
        _wait_ok(f"http://127.0.0.1:{port}/ping", timeout_s=10.0)

        # No TLS on the fake directory, so the source has to fall back to http.
        config = ServiceConfig(directory_host=f"127.0.0.1:{port}", probe_timeout_s=3.0)
        registry = Registry()
        geo = GeoResolver()
        scheduler = build_scheduler(config, registry, geo)

        snap = asyncio.run(scheduler.run_health_cycle())
        assert snap is not None

        base = f"http://127.0.0.1:{port}"
        assert [n.url for n in snap.healthy("hyperion", "mainnet")] == [f"{base}/fresh"]
        assert [n.url for n in snap.healthy("hyperion", "testnet")] == [f"{base}/fresh"]
        assert [n.url for n in snap.healthy("atomic", "mainnet")] == [f"{base}/market"]
        assert snap.healthy("atomic", "testnet") == ()

        client = TestClient(create_app(config, registry=registry, geo=geo, scheduler=scheduler, start_scheduler=False))
        r = client.get("/nodes")
        assert r.status_code == 200
        assert r.json()[0]["streaming"] == {"enable": True, "traces": False, "deltas": True}

        r = client.get("/nodes", params={"type": "atomic", "atomicassets": "false"})
        assert r.json()[0]["atomic"] == {"atomicassets": False, "atomicmarket": True}

        r = client.get("/nodes", params={"network": "testnet", "historyfull": "false"})
        assert [n["url"] for n in r.json()] == [f"{base}/fresh"]
        scheduler.source.close()
    finally:
        server.should_exit = True
        server._thread.join(timeout=5.0)  # type: ignore[attr-defined]
