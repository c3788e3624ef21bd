from __future__ import annotations

import sys
from pathlib import Path

# Allow running as a script without requiring `PYTHONPATH=.`.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import uvicorn
import bittensor as bt

from noderadar.app import create_app
from noderadar.config import load_service_env


def main() -> int:
    config = load_service_env()
    app = create_app(config)
    bt.logging.info(f"Server running at http://{config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port, log_level="info")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
