from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from botfleet.config.worker import (
    WorkerConfig,
    canonical_fields,
    render_worker_env,
    slot_default,
    start_violations,
)
from botfleet.types import SlotId

logger = logging.getLogger("botfleet.config")


@dataclass(frozen=True)
class ValidationReport:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    config: WorkerConfig | None = None


class ConfigStore:
    """Per-tenant worker configuration kept as one JSON document per slot.

    The store owns the tenant directory's config artifacts and the transient
    `KEY=value` files handed to worker processes.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    @property
    def directory(self) -> Path:
        return self._directory

    def config_path(self, slot: SlotId) -> Path:
        return self._directory / f"{slot.value}-config.json"

    def worker_file_path(self, slot: SlotId) -> Path:
        return self._directory / f"{slot.value}.env"

    def seed_defaults(self) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        for slot in SlotId:
            if not self.config_path(slot).exists():
                self._write(slot, self._stamp(slot_default(slot)))

    def load(self, slot: SlotId) -> WorkerConfig:
        path = self.config_path(slot)
        try:
            return WorkerConfig.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return slot_default(slot)
        except (OSError, ValidationError, ValueError):
            logger.warning("config_unreadable", extra={"slot": slot.value, "path": str(path)})
            return slot_default(slot)

    def save(self, slot: SlotId, partial: dict[str, Any]) -> WorkerConfig:
        """Merge `partial` over the stored record and persist it.

        Raises pydantic's ValidationError for values the model rejects and
        OSError when the file cannot be written.
        """
        data = self.load(slot).model_dump()
        data.update(canonical_fields(partial))
        merged = self._stamp(WorkerConfig.model_validate(data))
        self._write(slot, merged)
        return merged

    def validate_for_start(self, slot: SlotId) -> ValidationReport:
        cfg = self.load(slot)
        errors = start_violations(cfg)
        return ValidationReport(is_valid=not errors, errors=errors, config=cfg)

    def materialize_for_worker(self, slot: SlotId) -> Path | None:
        path = self.worker_file_path(slot)
        try:
            path.write_text(render_worker_env(self.load(slot)), encoding="utf-8")
        except OSError:
            logger.exception("worker_file_write_failed", extra={"slot": slot.value, "path": str(path)})
            return None
        return path.resolve()

    def discard_materialized(self, slot: SlotId) -> None:
        self.worker_file_path(slot).unlink(missing_ok=True)

    def cleanup(self) -> None:
        try:
            shutil.rmtree(self._directory)
        except FileNotFoundError:
            return
        except OSError:
            logger.exception("config_cleanup_failed", extra={"path": str(self._directory)})

    def _write(self, slot: SlotId, cfg: WorkerConfig) -> None:
        self.config_path(slot).write_text(
            cfg.model_dump_json(by_alias=True, indent=2),
            encoding="utf-8",
        )

    @staticmethod
    def _stamp(cfg: WorkerConfig) -> WorkerConfig:
        return cfg.model_copy(update={"last_updated": datetime.now(UTC)})
