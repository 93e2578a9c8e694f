from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import suppress
from typing import Any

from botfleet.directory import TenantDirectory
from botfleet.sessions import SessionRegistry

logger = logging.getLogger("botfleet.reclaim")

DEFAULT_SESSION_SWEEP_SECONDS = 60 * 60
DEFAULT_ORPHAN_SWEEP_SECONDS = 10 * 60
DEFAULT_SUPERVISOR_SWEEP_SECONDS = 5 * 60


class ReclamationScheduler:
    """Three periodic sweeps sharing the control plane's event loop.

    Each sweep handles its own failures: an error reclaiming one tenant is
    logged and the sweep moves on, and an error in a whole pass is logged and
    retried on the next interval.
    """

    def __init__(
        self,
        *,
        registry: SessionRegistry,
        directory: TenantDirectory,
        session_interval_s: float = DEFAULT_SESSION_SWEEP_SECONDS,
        orphan_interval_s: float = DEFAULT_ORPHAN_SWEEP_SECONDS,
        supervisor_interval_s: float = DEFAULT_SUPERVISOR_SWEEP_SECONDS,
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._intervals = {
            "session_expiry": session_interval_s,
            "orphan_directories": orphan_interval_s,
            "idle_supervisors": supervisor_interval_s,
        }
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def sweep_sessions(self) -> list[str]:
        reclaimed = self._registry.expire_sessions()
        if reclaimed:
            logger.info("sessions_reclaimed", extra={"count": len(reclaimed)})
        return reclaimed

    def sweep_orphans(self) -> list[str]:
        removed = self._registry.reclaim_orphaned_directories()
        if removed:
            logger.info("orphans_reclaimed", extra={"count": len(removed)})
        return removed

    def sweep_supervisors(self) -> list[str]:
        reaped: list[str] = []
        for tenant_id, _supervisor in self._directory.items():
            if self._registry.has_tenant(tenant_id):
                continue
            try:
                self._directory.discard(tenant_id)
            except Exception:
                logger.exception("supervisor_reap_failed", extra={"tenant_id": tenant_id})
                continue
            reaped.append(tenant_id)
        if reaped:
            logger.info("supervisors_reaped", extra={"count": len(reaped)})
        return reaped

    async def start(self) -> None:
        if self.running:
            return
        sweeps: dict[str, Callable[[], Any]] = {
            "session_expiry": self.sweep_sessions,
            "orphan_directories": self.sweep_orphans,
            "idle_supervisors": self.sweep_supervisors,
        }
        self._tasks = [
            asyncio.create_task(self._loop(name, fn, self._intervals[name]), name=f"sweep:{name}")
            for name, fn in sweeps.items()
        ]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    async def _loop(self, name: str, sweep: Callable[[], Any], interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            try:
                sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("sweep_failed", extra={"action": name})
