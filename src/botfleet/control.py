from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, assert_never

from botfleet.config import WorkerConfig
from botfleet.directory import SupervisorFactory, TenantDirectory, supervisor_factory
from botfleet.engine import Subscription, WorkerSupervisor
from botfleet.reclaim import ReclamationScheduler
from botfleet.sessions import SessionRegistry, Tenant
from botfleet.settings import Settings
from botfleet.types import ActionResult, BatchResult, SlotId

logger = logging.getLogger("botfleet.control")


class ControlAction(StrEnum):
    START = "start"
    STOP = "stop"


@dataclass
class ObserverFeed:
    """What an observer gets on connect: a snapshot, then live events."""

    tenant_id: str
    status: dict[str, Any]
    logs: list[dict[str, Any]]
    subscription: Subscription


class ControlPlane:
    """Tenant-scoped operations over the session registry and supervisors.

    Every method taking a tenant id raises TenantNotFoundError when the tenant
    has been reclaimed in the meantime.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        registry: SessionRegistry,
        directory: TenantDirectory,
        scheduler: ReclamationScheduler,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.directory = directory
        self.scheduler = scheduler

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        factory: SupervisorFactory | None = None,
    ) -> ControlPlane:
        registry = SessionRegistry(
            root=settings.data_dir,
            max_age_seconds=settings.session_max_age_seconds,
            idle_seconds=settings.session_idle_seconds,
        )
        directory = TenantDirectory(registry, factory or supervisor_factory(settings))
        scheduler = ReclamationScheduler(
            registry=registry,
            directory=directory,
            session_interval_s=settings.session_sweep_seconds,
            orphan_interval_s=settings.orphan_sweep_seconds,
            supervisor_interval_s=settings.supervisor_sweep_seconds,
        )
        return cls(settings=settings, registry=registry, directory=directory, scheduler=scheduler)

    async def startup(self) -> None:
        if self.settings.clear_data_on_startup:
            self.registry.clear_all()
        else:
            self.registry.reclaim_orphaned_directories()
        await self.scheduler.start()
        logger.info("control_plane_started", extra={"path": str(self.registry.root)})

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        await self.directory.close()
        logger.info("control_plane_stopped")

    def resolve(self, token: str | None) -> Tenant | None:
        return self.registry.resolve_session(token)

    def resolve_or_create(self, token: str | None) -> tuple[Tenant, str | None]:
        """Resolve a session, issuing a fresh one when it is unknown or expired.

        Returns the tenant and, only when a new session was created, its token.
        """
        tenant = self.registry.resolve_session(token)
        if tenant is not None:
            return tenant, None
        tenant, session = self.registry.create_tenant_session()
        return tenant, session.token

    def supervisor(self, tenant_id: str) -> WorkerSupervisor:
        return self.directory.get(tenant_id)

    def get_status(self, tenant_id: str) -> dict[str, Any]:
        supervisor = self.supervisor(tenant_id)
        return {
            "runningBots": supervisor.status().running,
            "bots": supervisor.slot_views(),
        }

    def get_logs(self, tenant_id: str, limit: int = 100) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.supervisor(tenant_id).logs(limit)]

    async def run_slot_action(self, tenant_id: str, action: ControlAction, slot: SlotId) -> ActionResult:
        supervisor = self.supervisor(tenant_id)
        match action:
            case ControlAction.START:
                result = await supervisor.start(slot)
            case ControlAction.STOP:
                result = supervisor.stop(slot)
            case _:
                assert_never(action)
        logger.info(
            "slot_action_ok" if result.success else "slot_action_refused",
            extra={"tenant_id": tenant_id, "slot": slot.value, "action": action.value},
        )
        return result

    async def run_batch_action(self, tenant_id: str, action: ControlAction) -> BatchResult:
        supervisor = self.supervisor(tenant_id)
        match action:
            case ControlAction.START:
                return await supervisor.start_all()
            case ControlAction.STOP:
                return supervisor.stop_all()
            case _:
                assert_never(action)

    def get_config(self, tenant_id: str, slot: SlotId) -> WorkerConfig:
        return self.supervisor(tenant_id).config_store.load(slot)

    def save_config(self, tenant_id: str, slot: SlotId, partial: dict[str, Any]) -> WorkerConfig:
        """Raises pydantic's ValidationError for rejected values."""
        return self.supervisor(tenant_id).config_store.save(slot, partial)

    def heartbeat(self, tenant_id: str) -> bool:
        return self.registry.touch(tenant_id)

    def logout(self, tenant_id: str) -> ActionResult:
        try:
            self._teardown_tenant(tenant_id)
        except OSError as e:
            return ActionResult(False, f"Logout failed: {e}")
        return ActionResult(True, "Logged out successfully and data cleared")

    def cleanup(self, tenant_id: str) -> ActionResult:
        try:
            self._teardown_tenant(tenant_id)
        except OSError as e:
            return ActionResult(False, f"Cleanup failed: {e}")
        return ActionResult(True, "Data cleaned up successfully")

    def open_feed(self, token: str | None) -> ObserverFeed | None:
        """Bind an observer to the caller's tenant; None when it cannot be resolved."""
        tenant = self.registry.resolve_session(token)
        if tenant is None:
            return None
        supervisor = self.supervisor(tenant.tenant_id)
        subscription = supervisor.events.subscribe()
        return ObserverFeed(
            tenant_id=tenant.tenant_id,
            status=supervisor.status().to_dict(),
            logs=[entry.to_dict() for entry in supervisor.logs(self.settings.log_tail)],
            subscription=subscription,
        )

    def _teardown_tenant(self, tenant_id: str) -> None:
        if tenant_id in self.directory:
            self.directory.get(tenant_id).stop_all()
        self.registry.destroy_tenant(tenant_id)
        self.directory.discard(tenant_id)
