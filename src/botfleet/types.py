from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal


class SlotId(StrEnum):
    BOT1 = "bot1"
    BOT2 = "bot2"
    BOT3 = "bot3"


class SlotStatus(StrEnum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    ERROR = "error"


LogLevel = Literal["info", "success", "warning", "error"]

SLOT_NAMES: dict[SlotId, str] = {
    SlotId.BOT1: "Balanced Bot",
    SlotId.BOT2: "Aggressive Bot",
    SlotId.BOT3: "Conservative Bot",
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    slot: SlotId
    level: LogLevel
    message: str

    @classmethod
    def now(cls, slot: SlotId, level: LogLevel, message: str) -> LogEntry:
        return cls(timestamp=datetime.now(UTC), slot=slot, level=level, message=message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "bot": self.slot.value,
            "type": self.level,
            "message": self.message,
        }


@dataclass(frozen=True)
class ActionResult:
    success: bool
    message: str
    # Violated configuration rules when a start is refused.
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.errors:
            payload["errors"] = list(self.errors)
        return payload


@dataclass(frozen=True)
class BatchResult:
    verb: str
    succeeded: int
    failed: int

    @property
    def success(self) -> bool:
        return self.succeeded > 0

    @property
    def message(self) -> str:
        text = f"{self.verb} {self.succeeded} bots"
        if self.failed:
            text += f", {self.failed} failed"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }
