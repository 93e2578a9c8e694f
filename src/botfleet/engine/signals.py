from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal

Stream = Literal["stdout", "stderr"]

READY_SENTINEL = "BOTFLEET:READY"
FAILED_SENTINEL = "BOTFLEET:FAILED"

# Legacy markers printed by the current worker binary.
STARTUP_MARKERS = ("🚀 Starting Solana Trading Bot", "💰 Wallet Address:")
FAILURE_MARKERS = ("❌", "Error")


class WorkerSignal(StrEnum):
    STARTED = "started"
    FAILED = "failed"
    OTHER = "other"


@dataclass(frozen=True)
class LineClassifier:
    """Map one line of worker output to a closed set of signals.

    Success is only recognized on stdout and failure only on stderr. An exact
    sentinel line always wins over substring markers.
    """

    startup_markers: tuple[str, ...] = STARTUP_MARKERS
    failure_markers: tuple[str, ...] = FAILURE_MARKERS

    def classify(self, line: str, stream: Stream) -> WorkerSignal:
        text = line.strip()
        if stream == "stdout":
            if text == READY_SENTINEL:
                return WorkerSignal.STARTED
            if any(marker in text for marker in self.startup_markers):
                return WorkerSignal.STARTED
            return WorkerSignal.OTHER
        if text == FAILED_SENTINEL:
            return WorkerSignal.FAILED
        if any(marker in text for marker in self.failure_markers):
            return WorkerSignal.FAILED
        return WorkerSignal.OTHER
