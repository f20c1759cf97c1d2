# src/taskmaster/tasks/task_scheduler.py

from __future__ import annotations

"""
Orchestrator.

Three independent polling loops:
- scheduling: reconcile unscheduled tasks into start times,
- execution: start due SCHEDULED tasks,
- cleanup: delete terminal tasks past the retention window.

Each run executes in a worker thread (store and oracle are blocking) and is
isolated: an exception is logged and the loop sleeps until its next tick.
The loops share nothing but the store, so a stuck oracle call in one loop
does not hold up the others.
"""

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .task_api import TaskService
from .task_models import RunOutcome

logger = logging.getLogger(__name__)


async def run_periodic(
        name: str,
        job: Callable[[], Any],
        *,
        interval_seconds: float,
        stop_event: asyncio.Event | None = None,
) -> None:
    """
    Run `job` every interval_seconds until stop_event is set (or the task is cancelled).

    The first run happens immediately.
    """
    sleep_s = max(0.05, float(interval_seconds))

    while stop_event is None or not stop_event.is_set():
        try:
            await asyncio.to_thread(job)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s run failed", name)

        if stop_event is None:
            await asyncio.sleep(sleep_s)
            continue
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=sleep_s)

    logger.info("%s loop stopped.", name)


class Orchestrator:
    def __init__(
        self,
        service: TaskService,
        *,
        scheduling_interval_seconds: float = 3600.0,
        execution_interval_seconds: float = 60.0,
        cleanup_interval_seconds: float = 86400.0,
        retention_seconds: float = 30 * 86400.0,
    ) -> None:
        self._service = service
        self.scheduling_interval_seconds = float(scheduling_interval_seconds)
        self.execution_interval_seconds = float(execution_interval_seconds)
        self.cleanup_interval_seconds = float(cleanup_interval_seconds)
        self.retention_seconds = float(retention_seconds)

        self.last_scheduling: RunOutcome | None = None
        self.last_execution: RunOutcome | None = None
        self.last_cleanup: int | None = None

    @classmethod
    def from_settings(cls, service: TaskService, settings: Any) -> Orchestrator:
        return cls(
            service,
            scheduling_interval_seconds=settings.scheduling_interval_seconds,
            execution_interval_seconds=settings.execution_interval_seconds,
            cleanup_interval_seconds=settings.cleanup_interval_seconds,
            retention_seconds=settings.retention_seconds,
        )

    # Each run_* never raises; failures are logged and reported as None.

    def run_scheduling(self) -> RunOutcome | None:
        logger.info("Running scheduled job: schedule unscheduled tasks")
        try:
            outcome = self._service.reconcile()
        except Exception:
            logger.exception("Scheduling run failed")
            return None
        self.last_scheduling = outcome
        return outcome

    def run_execution(self) -> RunOutcome | None:
        logger.debug("Running scheduled job: initiate due tasks")
        try:
            outcome = self._service.initiate_due()
        except Exception:
            logger.exception("Execution run failed")
            return None
        self.last_execution = outcome
        return outcome

    def run_cleanup(self) -> int | None:
        logger.info("Running scheduled job: retention sweep")
        try:
            deleted = self._service.sweep(self.retention_seconds)
        except Exception:
            logger.exception("Cleanup run failed")
            return None
        self.last_cleanup = deleted
        return deleted

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        logger.info(
            "Orchestrator started (scheduling=%ss execution=%ss cleanup=%ss)",
            self.scheduling_interval_seconds,
            self.execution_interval_seconds,
            self.cleanup_interval_seconds,
        )
        await asyncio.gather(
            run_periodic(
                "scheduling",
                self.run_scheduling,
                interval_seconds=self.scheduling_interval_seconds,
                stop_event=stop_event,
            ),
            run_periodic(
                "execution",
                self.run_execution,
                interval_seconds=self.execution_interval_seconds,
                stop_event=stop_event,
            ),
            run_periodic(
                "cleanup",
                self.run_cleanup,
                interval_seconds=self.cleanup_interval_seconds,
                stop_event=stop_event,
            ),
        )


@dataclass(slots=True)
class OrchestratorRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal orchestrator stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_orchestrator_in_background(orchestrator: Orchestrator) -> OrchestratorRunner | None:
    """
    Run the orchestrator loops in a background thread with their own event loop,
    so the blocking console REPL can own the main thread.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(orchestrator.run(stop_event))
        except Exception:
            logger.exception("Orchestrator crashed")
        finally:
            with contextlib.suppress(Exception):
                loop.stop()
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="orchestrator", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Orchestrator thread did not initialize properly.")
        return None

    logger.info("Orchestrator background thread started.")
    return OrchestratorRunner(thread=t, loop=loop, stop_event=stop_event)
