from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from botfleet.config import ConfigStore
from botfleet.engine import WorkerSupervisor
from botfleet.sessions import SessionRegistry, TenantNotFoundError
from botfleet.settings import Settings

logger = logging.getLogger("botfleet.directory")

SupervisorFactory = Callable[[str, ConfigStore], WorkerSupervisor]


def supervisor_factory(settings: Settings) -> SupervisorFactory:
    def build(tenant_id: str, config_store: ConfigStore) -> WorkerSupervisor:
        return WorkerSupervisor(
            tenant_id=tenant_id,
            config_store=config_store,
            command=settings.worker_argv(),
            startup_timeout_seconds=settings.startup_timeout_seconds,
            log_capacity=settings.log_capacity,
            kill_after_seconds=settings.kill_after(),
            queue_size=settings.subscriber_queue_size,
        )

    return build


class TenantDirectory:
    """Worker supervisors keyed by tenant id, created on first use."""

    def __init__(self, registry: SessionRegistry, factory: SupervisorFactory) -> None:
        self._registry = registry
        self._factory = factory
        self._supervisors: dict[str, WorkerSupervisor] = {}
        registry.on_tenant_destroyed(self.discard)

    def __len__(self) -> int:
        return len(self._supervisors)

    def __contains__(self, tenant_id: object) -> bool:
        return tenant_id in self._supervisors

    def get(self, tenant_id: str) -> WorkerSupervisor:
        supervisor = self._supervisors.get(tenant_id)
        if supervisor is not None:
            return supervisor
        tenant = self._registry.get_tenant(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        supervisor = self._factory(tenant_id, ConfigStore(tenant.directory))
        self._supervisors[tenant_id] = supervisor
        logger.info("supervisor_created", extra={"tenant_id": tenant_id})
        return supervisor

    def items(self) -> list[tuple[str, WorkerSupervisor]]:
        return list(self._supervisors.items())

    def discard(self, tenant_id: str) -> bool:
        supervisor = self._supervisors.pop(tenant_id, None)
        if supervisor is None:
            return False
        supervisor.teardown()
        return True

    async def close(self, timeout: float | None = 5.0) -> None:
        """Tear down every supervisor and wait for their workers to exit."""
        supervisors = list(self._supervisors.values())
        self._supervisors.clear()
        for supervisor in supervisors:
            try:
                supervisor.teardown()
            except Exception:
                logger.exception("supervisor_teardown_failed", extra={"tenant_id": supervisor.tenant_id})
        if supervisors:
            await asyncio.gather(*(s.wait_idle(timeout) for s in supervisors))
