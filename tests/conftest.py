import asyncio
from pathlib import Path
from typing import Optional

import pytest

from botfleet.config import ConfigStore
from botfleet.engine import WorkerSupervisor
from botfleet.types import SlotId

VALID_KEY = "5" * 88


class FakeStream:
    def __init__(self) -> None:
        self._lines: asyncio.Queue[bytes] = asyncio.Queue()

    def feed(self, line: str) -> None:
        self._lines.put_nowait(line.encode("utf-8") + b"\n")

    def close(self) -> None:
        self._lines.put_nowait(b"")

    async def readline(self) -> bytes:
        return await self._lines.get()


class FakeProcess:
    def __init__(self, pid: int, *, ignore_terminate: bool = False) -> None:
        self.pid = pid
        self.returncode: Optional[int] = None
        self.stdout = FakeStream()
        self.stderr = FakeStream()
        self.terminated = False
        self.killed = False
        self._ignore_terminate = ignore_terminate
        self._exited = asyncio.Event()

    def exit(self, code: int) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.close()
        self.stderr.close()
        self._exited.set()

    def terminate(self) -> None:
        self.terminated = True
        if not self._ignore_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode


class FakeSpawner:
    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.processes: list[FakeProcess] = []
        self.fail = False
        self.ignore_terminate = False

    async def __call__(self, *argv: str) -> FakeProcess:
        self.calls.append(argv)
        if self.fail:
            raise FileNotFoundError(argv[0])
        process = FakeProcess(4000 + len(self.processes), ignore_terminate=self.ignore_terminate)
        self.processes.append(process)
        return process


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def store(tmp_path: Path) -> ConfigStore:
    """A tenant config store whose three slots would pass start validation."""
    store = ConfigStore(tmp_path / "tenant")
    store.seed_defaults()
    for slot in SlotId:
        store.save(slot, {"privateKey": VALID_KEY})
    return store


@pytest.fixture
def make_supervisor(spawner: FakeSpawner):
    def build(config_store: ConfigStore, **kwargs) -> WorkerSupervisor:
        return WorkerSupervisor(
            tenant_id=kwargs.pop("tenant_id", "tenant-1"),
            config_store=config_store,
            command=["node", "bot.js"],
            spawn=spawner,
            **kwargs,
        )

    return build
