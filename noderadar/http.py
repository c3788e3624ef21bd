from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

import requests

from noderadar.errors import FetchError


def join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


class JsonClient:
    """
    Blocking `requests` GETs, run off the event loop on a private thread pool.

    Every call carries the same timeout twice: as the socket timeout handed to
    requests and as an overall deadline on the awaiting side, so a slow body
    still counts as a failure for the caller. The deadline starts once a
    worker picks the call up; time spent queued for a worker is not charged
    to the node.
    """

    def __init__(self, *, session: Optional[requests.Session] = None, max_workers: int = 128) -> None:
        self._session = session
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="noderadar-http")

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def get_json_sync(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        timeout_s: float = 5.0,
    ) -> Any:
        getter = self._session.get if self._session is not None else requests.get
        try:
            r = getter(url, params=params, timeout=timeout_s)
            r.raise_for_status()
            return r.json()
        except requests.RequestException as e:
            raise FetchError(url, str(e)) from e
        except ValueError as e:
            raise FetchError(url, f"invalid JSON: {e}") from e

    async def get_json(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        timeout_s: float = 5.0,
    ) -> Any:
        loop = asyncio.get_running_loop()
        started = asyncio.Event()

        def run() -> Any:
            loop.call_soon_threadsafe(started.set)
            return self.get_json_sync(url, params=params, timeout_s=timeout_s)

        future = loop.run_in_executor(self._executor, run)
        try:
            await started.wait()
            return await asyncio.wait_for(future, timeout=timeout_s)
        except asyncio.TimeoutError as e:
            raise FetchError(url, f"timed out after {timeout_s}s") from e
        finally:
            if not future.done():
                future.cancel()
