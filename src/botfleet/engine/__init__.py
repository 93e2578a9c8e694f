__all__ = [
    "EventChannel",
    "LineClassifier",
    "StatusSnapshot",
    "Subscription",
    "WorkerSignal",
    "WorkerSupervisor",
    "spawn_worker",
]

from botfleet.engine.events import EventChannel, Subscription
from botfleet.engine.signals import LineClassifier, WorkerSignal
from botfleet.engine.supervisor import StatusSnapshot, WorkerSupervisor, spawn_worker
