from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from dataclasses import dataclass, field
from itertools import islice
from pathlib import Path
from typing import Any, Protocol

from botfleet.config import ConfigStore
from botfleet.engine.events import EventChannel
from botfleet.engine.signals import LineClassifier, Stream, WorkerSignal
from botfleet.sessions import TenantNotFoundError
from botfleet.types import (
    SLOT_NAMES,
    ActionResult,
    BatchResult,
    LogEntry,
    LogLevel,
    SlotId,
    SlotStatus,
)

logger = logging.getLogger("botfleet.supervisor")

DEFAULT_STARTUP_TIMEOUT_SECONDS = 10.0
DEFAULT_LOG_CAPACITY = 1000


class LineReader(Protocol):
    async def readline(self) -> bytes: ...


class WorkerProcess(Protocol):
    pid: int
    returncode: int | None
    stdout: LineReader | None
    stderr: LineReader | None

    def terminate(self) -> None: ...

    def kill(self) -> None: ...

    async def wait(self) -> int: ...


SpawnFn = Callable[..., Awaitable[WorkerProcess]]


async def spawn_worker(*argv: str) -> WorkerProcess:
    return await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


@dataclass
class _WorkerRun:
    process: WorkerProcess
    config_path: Path
    timer: asyncio.TimerHandle | None = None
    kill_timer: asyncio.TimerHandle | None = None
    stop_requested: bool = False

    def disarm(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


@dataclass
class WorkerSlot:
    slot_id: SlotId
    name: str
    status: SlotStatus = SlotStatus.STOPPED
    run: _WorkerRun | None = None
    spawning: bool = False


@dataclass(frozen=True)
class StatusSnapshot:
    slots: dict[SlotId, SlotStatus] = field(default_factory=dict)
    running: int = 0

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {slot.value: status.value for slot, status in self.slots.items()}
        payload["runningBots"] = self.running
        return payload


class WorkerSupervisor:
    """Runs the three worker slots of one tenant.

    Slot lifecycle::

        stopped -> starting -> running | error -> stopped

    A slot holds at most one process. Output lines are appended to the
    tenant's log, and startup/failure markers only move a slot while it is
    still `starting`. Every status change and log append is published on
    `events`, which belongs to this tenant alone.
    """

    def __init__(
        self,
        *,
        tenant_id: str,
        config_store: ConfigStore,
        command: Sequence[str],
        startup_timeout_seconds: float = DEFAULT_STARTUP_TIMEOUT_SECONDS,
        log_capacity: int = DEFAULT_LOG_CAPACITY,
        kill_after_seconds: float | None = None,
        queue_size: int = 256,
        spawn: SpawnFn = spawn_worker,
        classifier: LineClassifier | None = None,
    ) -> None:
        self._tenant_id = tenant_id
        self._configs = config_store
        self._command = list(command)
        self._startup_timeout_s = startup_timeout_seconds
        self._kill_after_s = kill_after_seconds
        self._spawn = spawn
        self._classifier = classifier or LineClassifier()
        self._slots = {slot: WorkerSlot(slot_id=slot, name=SLOT_NAMES[slot]) for slot in SlotId}
        self._logs: deque[LogEntry] = deque(maxlen=log_capacity)
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        self.events = EventChannel(queue_size=queue_size)

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def config_store(self) -> ConfigStore:
        return self._configs

    def slot_status(self, slot_id: SlotId) -> SlotStatus:
        return self._slots[slot_id].status

    def has_process(self, slot_id: SlotId) -> bool:
        return self._slots[slot_id].run is not None

    def status(self) -> StatusSnapshot:
        slots = {slot_id: slot.status for slot_id, slot in self._slots.items()}
        running = sum(1 for s in slots.values() if s is SlotStatus.RUNNING)
        return StatusSnapshot(slots=slots, running=running)

    def slot_views(self) -> list[dict[str, str]]:
        return [
            {"id": slot.slot_id.value, "name": slot.name, "status": slot.status.value}
            for slot in self._slots.values()
        ]

    def logs(self, limit: int = 100) -> list[LogEntry]:
        """Most recent entries first."""
        return list(islice(self._logs, max(0, limit)))

    def log_count(self) -> int:
        return len(self._logs)

    def append_log(self, slot_id: SlotId, level: LogLevel, message: str) -> LogEntry:
        entry = LogEntry.now(slot_id, level, message)
        # Bounded deque: appendleft drops the oldest entry from the right end.
        self._logs.appendleft(entry)
        self.events.publish("newLog", entry.to_dict())
        return entry

    async def start(self, slot_id: SlotId) -> ActionResult:
        if self._closed:
            raise TenantNotFoundError(self._tenant_id)
        slot = self._slots[slot_id]
        if slot.run is not None or slot.spawning:
            return ActionResult(False, "Bot is already running")

        report = self._configs.validate_for_start(slot_id)
        if not report.is_valid:
            bullets = "\n• ".join(report.errors)
            return ActionResult(
                False,
                f"❌ Configuration errors for {slot.name}:\n• {bullets}",
                errors=list(report.errors),
            )

        path = self._configs.materialize_for_worker(slot_id)
        if path is None:
            return ActionResult(False, f"❌ Failed to create environment file for {slot.name}")

        slot.spawning = True
        try:
            process = await self._spawn(*self._command, str(path))
        except OSError as e:
            logger.exception(
                "worker_spawn_failed",
                extra={"tenant_id": self._tenant_id, "slot": slot_id.value},
            )
            self._configs.discard_materialized(slot_id)
            return ActionResult(False, f"❌ Failed to start {slot.name}: {e}")
        finally:
            slot.spawning = False

        run = _WorkerRun(process=process, config_path=path)
        slot.run = run
        self._track(self._watch(slot_id, run))

        if self._closed:
            # Torn down while the process was being spawned.
            self._terminate(run)
            slot.run = None
            raise TenantNotFoundError(self._tenant_id)

        self._set_status(slot, SlotStatus.STARTING)
        loop = asyncio.get_running_loop()
        run.timer = loop.call_later(self._startup_timeout_s, self._on_startup_timeout, slot_id, run)
        logger.info(
            "worker_spawned",
            extra={"tenant_id": self._tenant_id, "slot": slot_id.value, "pid": process.pid},
        )
        return ActionResult(True, f"{slot.name} is starting...")

    def stop(self, slot_id: SlotId) -> ActionResult:
        """Ask the worker to terminate; the exit itself is observed later."""
        slot = self._slots[slot_id]
        run = slot.run
        if run is None:
            return ActionResult(False, "Bot is not running")
        self._terminate(run)
        slot.run = None
        self._set_status(slot, SlotStatus.STOPPED)
        logger.info(
            "worker_stop_requested",
            extra={"tenant_id": self._tenant_id, "slot": slot_id.value, "pid": run.process.pid},
        )
        return ActionResult(True, f"{slot.name} stopped successfully")

    async def start_all(self) -> BatchResult:
        started = 0
        failed = 0
        for slot_id in SlotId:
            result = await self.start(slot_id)
            if result.success:
                started += 1
            else:
                failed += 1
        return BatchResult(verb="Started", succeeded=started, failed=failed)

    def stop_all(self) -> BatchResult:
        stopped = 0
        failed = 0
        for slot_id in SlotId:
            if self.stop(slot_id).success:
                stopped += 1
            else:
                failed += 1
        return BatchResult(verb="Stopped", succeeded=stopped, failed=failed)

    def teardown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.stop_all()
        self._configs.cleanup()
        self.events.close()
        logger.info("supervisor_torn_down", extra={"tenant_id": self._tenant_id})

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait for process watchers to finish; used on shutdown and in tests."""
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)

    def _track(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _set_status(self, slot: WorkerSlot, status: SlotStatus) -> None:
        if slot.status is status:
            return
        slot.status = status
        self.events.publish("statusUpdate", self.status().to_dict())

    def _terminate(self, run: _WorkerRun) -> None:
        run.stop_requested = True
        run.disarm()
        try:
            run.process.terminate()
        except ProcessLookupError:
            return
        if self._kill_after_s:
            loop = asyncio.get_running_loop()
            run.kill_timer = loop.call_later(self._kill_after_s, self._kill, run)

    def _kill(self, run: _WorkerRun) -> None:
        run.kill_timer = None
        if run.process.returncode is not None:
            return
        logger.warning(
            "worker_kill_escalated",
            extra={"tenant_id": self._tenant_id, "pid": run.process.pid},
        )
        try:
            run.process.kill()
        except ProcessLookupError:
            return

    async def _watch(self, slot_id: SlotId, run: _WorkerRun) -> None:
        await asyncio.gather(
            self._pump(slot_id, run, run.process.stdout, "stdout"),
            self._pump(slot_id, run, run.process.stderr, "stderr"),
        )
        returncode: int | None
        try:
            returncode = await run.process.wait()
        except Exception:
            logger.exception(
                "worker_wait_failed",
                extra={"tenant_id": self._tenant_id, "slot": slot_id.value},
            )
            returncode = run.process.returncode
        try:
            self._on_exit(slot_id, run, returncode)
        except Exception:
            logger.exception(
                "worker_exit_handler_failed",
                extra={"tenant_id": self._tenant_id, "slot": slot_id.value},
            )

    async def _pump(
        self,
        slot_id: SlotId,
        run: _WorkerRun,
        reader: LineReader | None,
        stream: Stream,
    ) -> None:
        if reader is None:
            return
        while True:
            try:
                raw = await reader.readline()
            except ValueError:
                # Line longer than the reader's buffer limit; the chunk is discarded.
                logger.warning(
                    "worker_line_too_long",
                    extra={"tenant_id": self._tenant_id, "slot": slot_id.value},
                )
                continue
            except Exception:
                logger.exception(
                    "worker_stream_failed",
                    extra={"tenant_id": self._tenant_id, "slot": slot_id.value},
                )
                return
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            try:
                self._on_line(slot_id, run, line, stream)
            except Exception:
                logger.exception(
                    "worker_line_handler_failed",
                    extra={"tenant_id": self._tenant_id, "slot": slot_id.value},
                )

    def _on_line(self, slot_id: SlotId, run: _WorkerRun, line: str, stream: Stream) -> None:
        slot = self._slots[slot_id]
        self.append_log(slot_id, "info" if stream == "stdout" else "error", line)
        if slot.run is not run or slot.status is not SlotStatus.STARTING:
            return

        signal = self._classifier.classify(line, stream)
        if signal is WorkerSignal.STARTED:
            run.disarm()
            self._set_status(slot, SlotStatus.RUNNING)
            self.append_log(slot_id, "success", f"✅ {slot.name} started successfully")
            logger.info(
                "worker_running",
                extra={"tenant_id": self._tenant_id, "slot": slot_id.value},
            )
        elif signal is WorkerSignal.FAILED:
            run.disarm()
            self._set_status(slot, SlotStatus.ERROR)
            logger.warning(
                "worker_start_failed",
                extra={"tenant_id": self._tenant_id, "slot": slot_id.value},
            )

    def _on_startup_timeout(self, slot_id: SlotId, run: _WorkerRun) -> None:
        run.timer = None
        slot = self._slots[slot_id]
        if slot.run is not run or slot.status is not SlotStatus.STARTING:
            return
        self._set_status(slot, SlotStatus.ERROR)
        self.append_log(slot_id, "error", f"❌ {slot.name} failed to start (timeout)")
        logger.warning(
            "worker_start_timeout",
            extra={"tenant_id": self._tenant_id, "slot": slot_id.value},
        )

    def _on_exit(self, slot_id: SlotId, run: _WorkerRun, returncode: int | None) -> None:
        run.disarm()
        if run.kill_timer is not None:
            run.kill_timer.cancel()
            run.kill_timer = None

        slot = self._slots[slot_id]
        if slot.run is run:
            slot.run = None
            self._set_status(slot, SlotStatus.STOPPED)

        # A signal we sent ourselves counts as a clean stop.
        signalled = run.stop_requested and returncode is not None and returncode < 0
        if returncode == 0 or signalled:
            self.append_log(slot_id, "info", f"{slot.name} stopped normally")
        else:
            self.append_log(slot_id, "error", f"{slot.name} stopped with error (code: {returncode})")

        # The file is shared by every run of the slot; a respawn may already own it.
        if slot.run is None and not slot.spawning:
            self._configs.discard_materialized(slot_id)
        logger.info(
            "worker_exited",
            extra={
                "tenant_id": self._tenant_id,
                "slot": slot_id.value,
                "pid": run.process.pid,
                "returncode": returncode,
            },
        )
