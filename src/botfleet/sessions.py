from __future__ import annotations

import logging
import secrets
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from botfleet.config import ConfigStore

logger = logging.getLogger("botfleet.sessions")

DEFAULT_MAX_AGE_SECONDS = 24 * 60 * 60
DEFAULT_IDLE_SECONDS = 2 * 60 * 60


class TenantNotFoundError(LookupError):
    """Raised when a tenant id no longer names a live tenant."""


@dataclass
class Session:
    token: str
    tenant_id: str
    created_at: float
    last_activity: float


@dataclass
class Tenant:
    tenant_id: str
    directory: Path
    session_id: str
    created_at: float


class SessionRegistry:
    """Owns sessions and tenants; the only authority on whether a tenant exists.

    Each tenant has exactly one directory under `root` named after its id and
    at most one live session. Listeners added with `on_tenant_destroyed` run
    after a tenant has been removed, so other components can release what
    they hold for it.
    """

    def __init__(
        self,
        *,
        root: Path,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        idle_seconds: float = DEFAULT_IDLE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._root = root
        self._max_age_s = max_age_seconds
        self._idle_s = idle_seconds
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._tenants: dict[str, Tenant] = {}
        self._listeners: list[Callable[[str], None]] = []
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def on_tenant_destroyed(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def tenant_dir(self, tenant_id: str) -> Path:
        return self._root / tenant_id

    def create_tenant_session(self) -> tuple[Tenant, Session]:
        tenant_id = secrets.token_hex(16)
        token = secrets.token_hex(32)
        directory = self.tenant_dir(tenant_id)
        # Surfaced to the caller; nothing is recorded until the directory exists.
        directory.mkdir(parents=True, exist_ok=False)
        ConfigStore(directory).seed_defaults()

        now = self._clock()
        session = Session(token=token, tenant_id=tenant_id, created_at=now, last_activity=now)
        tenant = Tenant(tenant_id=tenant_id, directory=directory, session_id=token, created_at=now)
        self._sessions[token] = session
        self._tenants[tenant_id] = tenant
        logger.info("session_created", extra={"tenant_id": tenant_id})
        return tenant, session

    def resolve_session(self, token: str | None) -> Tenant | None:
        if not token:
            return None
        session = self._sessions.get(token)
        if session is None:
            return None
        tenant = self._tenants.get(session.tenant_id)
        if tenant is None:
            return None
        session.last_activity = self._clock()
        return tenant

    def get_tenant(self, tenant_id: str) -> Tenant | None:
        return self._tenants.get(tenant_id)

    def has_tenant(self, tenant_id: str) -> bool:
        return tenant_id in self._tenants

    def tenant_ids(self) -> list[str]:
        return list(self._tenants)

    def session_count(self) -> int:
        return len(self._sessions)

    def touch(self, tenant_id: str) -> bool:
        tenant = self._tenants.get(tenant_id)
        if tenant is None:
            return False
        session = self._sessions.get(tenant.session_id)
        if session is None:
            return False
        session.last_activity = self._clock()
        return True

    def expire_sessions(self) -> list[str]:
        """Reclaim every tenant whose session is too old or idle too long."""
        now = self._clock()
        reclaimed: list[str] = []
        for token, session in list(self._sessions.items()):
            age = now - session.created_at
            idle = now - session.last_activity
            if age <= self._max_age_s and idle <= self._idle_s:
                continue
            if session.tenant_id not in self._tenants:
                self._sessions.pop(token, None)
                continue
            try:
                self.destroy_tenant(session.tenant_id)
            except Exception:
                logger.exception("session_expiry_failed", extra={"tenant_id": session.tenant_id})
                continue
            logger.info("session_expired", extra={"tenant_id": session.tenant_id})
            reclaimed.append(session.tenant_id)
        return reclaimed

    def reclaim_orphaned_directories(self) -> list[str]:
        """Delete directories under the root that no live tenant owns."""
        try:
            entries = list(self._root.iterdir())
        except FileNotFoundError:
            return []
        removed: list[str] = []
        for entry in entries:
            if entry.name in self._tenants:
                continue
            try:
                if not entry.is_dir():
                    continue
                shutil.rmtree(entry)
            except FileNotFoundError:
                # Gone between listing and deletion.
                continue
            except OSError:
                logger.exception("orphan_delete_failed", extra={"path": str(entry)})
                continue
            logger.info("orphan_reclaimed", extra={"path": str(entry)})
            removed.append(entry.name)
        return removed

    def destroy_tenant(self, tenant_id: str) -> None:
        """Delete the tenant's directory and records; a no-op for unknown ids.

        OSError from deleting the directory propagates and leaves the records
        in place so the caller can retry.
        """
        try:
            shutil.rmtree(self.tenant_dir(tenant_id))
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception("tenant_delete_failed", extra={"tenant_id": tenant_id})
            raise

        tenant = self._tenants.pop(tenant_id, None)
        if tenant is None:
            return
        self._sessions.pop(tenant.session_id, None)
        logger.info("tenant_destroyed", extra={"tenant_id": tenant_id})
        self._notify_destroyed(tenant_id)

    def clear_all(self) -> None:
        """Forget every session and tenant and wipe the storage root."""
        tenant_ids = list(self._tenants)
        self._sessions.clear()
        self._tenants.clear()
        if self._root.exists():
            shutil.rmtree(self._root)
        self._root.mkdir(parents=True, exist_ok=True)
        logger.info("all_data_cleared", extra={"count": len(tenant_ids)})
        for tenant_id in tenant_ids:
            self._notify_destroyed(tenant_id)

    def _notify_destroyed(self, tenant_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(tenant_id)
            except Exception:
                logger.exception("tenant_listener_failed", extra={"tenant_id": tenant_id})
