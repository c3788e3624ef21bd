"""Periodic node re-evaluation.

Three cooperative loops share the event loop with the API:
  - health cycle: probe every candidate and publish a new snapshot;
  - directory refresh: reload candidate lists, then run a health cycle;
  - heartbeat: log the time left until the next health cycle.
"""

from __future__ import annotations

import asyncio
import math
import time
import traceback
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import bittensor as bt

from noderadar.config import ServiceConfig
from noderadar.probes import Probe, ProbeOutcome
from noderadar.registry import Bucket, Registry, Snapshot, all_buckets
from noderadar.schemas import NODE_KINDS, Node
from noderadar.source import NodeSource


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING_CANDIDATES = "fetching_candidates"
    PROBING = "probing"
    SWAPPING = "swapping"


class HealthScheduler:
    def __init__(
        self,
        registry: Registry,
        source: NodeSource,
        probes: Mapping[str, Probe],
        *,
        config: Optional[ServiceConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.source = source
        self.probes = dict(probes)
        self.config = config or ServiceConfig()
        self._clock = clock

        self.state = CycleState.IDLE
        self.cycles_completed = 0
        self.cycles_skipped = 0
        self.next_health_check_at = self._clock() + self.config.health_check_interval_s

        self._cycle_lock = asyncio.Lock()
        self._tasks: List[asyncio.Task] = []

    # -- candidates -----------------------------------------------------

    async def refresh_candidates(self) -> bool:
        """Reload every kind's candidate list; a failed kind keeps its old list."""
        results = await asyncio.gather(
            *(self.source.fetch(kind) for kind in NODE_KINDS),
            return_exceptions=True,
        )
        refreshed = False
        for kind, result in zip(NODE_KINDS, results):
            if isinstance(result, BaseException):
                bt.logging.error(f"Failed to fetch {kind} node list, keeping previous candidates: {result}")
                continue
            counts = self.registry.replace_candidates(kind, result)
            bt.logging.info(f"Node list updated for {kind}: {counts}")
            refreshed = True
        return refreshed

    # -- health cycle ---------------------------------------------------

    async def run_health_cycle(self, *, wait: bool = False) -> Optional[Snapshot]:
        """Run one cycle; returns the published snapshot, or None if none was.

        A tick that lands on a running cycle is skipped unless `wait` is set,
        in which case it runs once the current cycle finishes.
        """
        if self._cycle_lock.locked() and not wait:
            self.cycles_skipped += 1
            bt.logging.warning("Health check already in progress; skipping this tick.")
            return None

        async with self._cycle_lock:
            try:
                return await self._run_cycle()
            except Exception:
                bt.logging.error(f"Health check cycle failed, previous snapshot kept:\n{traceback.format_exc()}")
                return None
            finally:
                self.state = CycleState.IDLE

    async def _run_cycle(self) -> Optional[Snapshot]:
        if self.registry.has_empty_bucket():
            self.state = CycleState.FETCHING_CANDIDATES
            bt.logging.warning("Node list has an empty bucket. Fetching node list...")
            refreshed = await self.refresh_candidates()
            if not refreshed and not any(self.registry.candidate_buckets().values()):
                bt.logging.error("No candidate nodes available; snapshot swap skipped.")
                return None

        self.state = CycleState.PROBING
        semaphore = asyncio.Semaphore(self.config.max_in_flight_probes)
        buckets = all_buckets()
        results = await asyncio.gather(
            *(self._probe_bucket(kind, network, semaphore) for kind, network in buckets)
        )
        healthy: Dict[Bucket, List[Node]] = dict(zip(buckets, results))

        self.state = CycleState.SWAPPING
        snap = self.registry.publish(healthy, now=self._clock())
        self.cycles_completed += 1

        summary = ", ".join(f"{kind}/{network}={len(healthy[(kind, network)])}" for kind, network in buckets)
        bt.logging.info(f"Health check completed (snapshot v{snap.version}). Healthy nodes: {summary}")
        return snap

    async def _probe_bucket(self, kind: str, network: str, semaphore: asyncio.Semaphore) -> List[Node]:
        candidates = self.registry.candidates(kind, network)
        if not candidates:
            return []
        probe = self.probes[kind]
        outcomes = await asyncio.gather(*(self._probe_one(probe, node, semaphore) for node in candidates))
        # gather keeps argument order, so candidate order survives.
        return [node for healthy, node in outcomes if healthy]

    async def _probe_one(self, probe: Probe, node: Node, semaphore: asyncio.Semaphore):
        async with semaphore:
            try:
                return await probe.probe(node, self.config.probe_timeout_s)
            except Exception as e:
                bt.logging.warning(f"Probe for {node.url} raised {e!r}; treating as unhealthy.")
                return ProbeOutcome(False, node)

    # -- loops ----------------------------------------------------------

    def seconds_until_next_check(self) -> int:
        return max(0, math.ceil(self.next_health_check_at - self._clock()))

    def log_countdown(self) -> None:
        bt.logging.info(f"Time until next health check: {self.seconds_until_next_check()} seconds")

    async def _health_loop(self) -> None:
        interval = self.config.health_check_interval_s
        while True:
            await self.run_health_cycle()
            self.next_health_check_at = self._clock() + interval
            bt.logging.info(f"Next health check in {interval:.0f} seconds")
            await asyncio.sleep(interval)

    async def _refresh_loop(self) -> None:
        interval = self.config.node_list_refresh_interval_s
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh_candidates()
            except Exception:
                bt.logging.error(f"Node list refresh failed:\n{traceback.format_exc()}")
            await self.run_health_cycle(wait=True)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.heartbeat_interval_s)
            self.log_countdown()

    def start(self) -> None:
        """Spawn the loops on the running event loop; the first cycle starts now."""
        if self._tasks:
            return
        loops: Sequence = (self._health_loop, self._refresh_loop, self._heartbeat_loop)
        self._tasks = [asyncio.create_task(loop(), name=f"noderadar-{loop.__name__.strip('_')}") for loop in loops]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.source.close()
