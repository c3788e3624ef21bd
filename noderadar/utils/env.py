from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

# Pick up a local .env once on import; real environment variables win.
load_dotenv(override=False)

_TRUTHY = {"1", "true", "t", "yes", "y", "on"}
_FALSY = {"0", "false", "f", "no", "n", "off"}


def _env_str(name: str, default: str = "") -> str:
    """Read a string env var, stripping whitespace."""
    return (os.getenv(name, default) or "").strip()


def parse_bool(raw: Optional[str], default: bool) -> bool:
    """
    Parse a user-supplied boolean.

    Anything that is not a recognised truthy/falsy spelling yields `default`,
    so query strings and env files never fail on a typo.
    """
    if raw is None:
        return default
    value = str(raw).strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    return default


def _env_int(name: str, default: int = 0) -> int:
    v = _env_str(name, "")
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        raise SystemExit(f"[noderadar] {name} must be an integer. Got: {v!r}")


def _env_float(name: str, default: float = 0.0) -> float:
    v = _env_str(name, "")
    if not v:
        return default
    try:
        return float(v)
    except ValueError:
        raise SystemExit(f"[noderadar] {name} must be a number. Got: {v!r}")
