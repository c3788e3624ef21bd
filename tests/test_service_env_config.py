import pytest

from noderadar.config import ServiceConfig, load_service_env
from noderadar.probes import build_probes, get_probe
from noderadar.probes.atomic import AtomicProbe
from noderadar.probes.hyperion import HyperionProbe
from noderadar.geo import GeoResolver
from noderadar.http import JsonClient
from noderadar.utils.env import parse_bool


def test_load_service_env_defaults():
    cfg = load_service_env()

    assert cfg == ServiceConfig()
    assert cfg.health_check_interval_s == 520
    assert cfg.node_list_refresh_interval_s == 86400
    assert cfg.probe_timeout_s == 5.0
    assert cfg.directory_host == "wax.sengine.co"
    assert cfg.geoip_database_path is None


def test_load_service_env_overrides(monkeypatch):
    monkeypatch.setenv("NODERADAR_PORT", "8080")
    monkeypatch.setenv("NODERADAR_HEALTH_CHECK_INTERVAL_S", "60")
    monkeypatch.setenv("NODERADAR_MAX_IN_FLIGHT_PROBES", "8")
    monkeypatch.setenv("NODERADAR_DIRECTORY_HOST", "directory.example/")
    monkeypatch.setenv("NODERADAR_GEOIP_DATABASE", "/data/GeoLite2-City.mmdb")
    monkeypatch.setenv("NODERADAR_ATOMIC_COLLECTION", "alien.worlds")

    cfg = load_service_env()

    assert cfg.port == 8080
    assert cfg.health_check_interval_s == 60.0
    assert cfg.max_in_flight_probes == 8
    assert cfg.directory_host == "directory.example"
    assert cfg.geoip_database_path == "/data/GeoLite2-City.mmdb"
    assert cfg.atomic_collection == "alien.worlds"


@pytest.mark.parametrize(
    "key,value",
    [
        ("NODERADAR_PORT", "0"),
        ("NODERADAR_PORT", "http"),
        ("NODERADAR_PROBE_TIMEOUT_S", "0"),
        ("NODERADAR_HEALTH_CHECK_INTERVAL_S", "-5"),
        ("NODERADAR_MAX_IN_FLIGHT_PROBES", "0"),
        ("NODERADAR_DIRECTORY_HOST", "https://wax.sengine.co"),
        ("NODERADAR_DEFAULT_COUNT", "0"),
    ],
)
def test_load_service_env_rejects_bad_values(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(SystemExit):
        load_service_env()


def test_parse_bool():
    assert parse_bool("true", False) is True
    assert parse_bool(" YES ", False) is True
    assert parse_bool("0", True) is False
    assert parse_bool("off", True) is False
    assert parse_bool("maybe", True) is True
    assert parse_bool(None, False) is False


def test_build_probes_uses_config():
    cfg = ServiceConfig(max_indexing_lag_s=30, atomic_collection="alien.worlds", atomic_market_owner="someone")
    probes = build_probes(cfg, JsonClient(), GeoResolver())

    assert isinstance(probes["hyperion"], HyperionProbe)
    assert probes["hyperion"].max_lag_s == 30
    assert isinstance(probes["atomic"], AtomicProbe)
    assert probes["atomic"].collection == "alien.worlds"
    assert probes["atomic"].market_owner == "someone"

    with pytest.raises(ValueError):
        get_probe("eos", cfg, JsonClient(), GeoResolver())


def test_bittensor_pin_keeps_logging_facade():
    import bittensor as bt
    from pathlib import Path

    assert callable(bt.logging.info)
    requirements = (Path(__file__).resolve().parents[1] / "requirements.txt").read_text(encoding="utf-8")
    pins = [line.strip() for line in requirements.splitlines() if line.strip().startswith("bittensor")]
    assert pins == ["bittensor>=9.0,<11"]
