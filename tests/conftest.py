import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path so `import noderadar` works under all pytest import modes.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    # A developer's .env or shell must not leak into config tests.
    for key in list(os.environ):
        if key.startswith("NODERADAR_"):
            monkeypatch.delenv(key, raising=False)


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: starts local uvicorn servers")
