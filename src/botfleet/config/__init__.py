__all__ = [
    "ConfigStore",
    "ValidationReport",
    "WorkerConfig",
    "default_config",
]

from botfleet.config.store import ConfigStore, ValidationReport
from botfleet.config.worker import WorkerConfig, default_config
