"""Durable, at-least-once job runtime.

Functions are triggered by named events. Every triggered execution is
persisted as a JobRun row and runs as its own asyncio task. Work inside a run
is split into named steps whose JSON outputs are memoized in JobStep, so a
resumed or re-delivered run skips the steps that already succeeded.

Cancellation is cooperative: a cancel event flips the run to `cancelled` and
the run notices before its next step (or while sleeping). Nothing is
interrupted mid-step.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import databases

from app.core.errors import JobCancelled, NonRetriableError, StepFailedError
from app.db.queries import job_runs
from app.services.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class CancelOn:
    """Cancel a run when `event` arrives with the same `match` value as the trigger."""

    event: str
    match: str


@dataclass
class JobEvent:
    name: str
    data: dict
    run_id: str


JobHandler = Callable[[JobEvent, "StepContext"], Awaitable[Any]]
FailureHandler = Callable[[JobEvent, BaseException, "StepContext"], Awaitable[None]]


@dataclass
class JobFunction:
    id: str
    trigger: str
    handler: JobHandler
    on_failure: Optional[FailureHandler] = None
    cancel_on: List[CancelOn] = field(default_factory=list)

    def __post_init__(self):
        keys = {rule.match for rule in self.cancel_on}
        if len(keys) > 1:
            raise ValueError(f"Job function '{self.id}' cancel rules must share one match key")

    @property
    def correlation_key(self) -> Optional[str]:
        return self.cancel_on[0].match if self.cancel_on else None

    def correlation_id(self, data: dict) -> Optional[str]:
        key = self.correlation_key
        if key is None or data.get(key) is None:
            return None
        return str(data[key])


class StepContext:
    """Step API handed to a job handler for one run."""

    def __init__(
        self,
        runtime: "JobRuntime",
        run_id: str,
        cancel_event: Optional[asyncio.Event] = None,
        prefix: str = "",
    ):
        self.runtime = runtime
        self.run_id = run_id
        self._cancel_event = cancel_event
        self._prefix = prefix
        self._seen: Counter = Counter()

    @property
    def db(self) -> databases.Database:
        return self.runtime.db

    async def run(self, step_id: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        """Run `fn` once per run, retrying transient failures.

        The output must be JSON-serializable; it is what later replays return.
        """
        step_id = self._unique(step_id)
        await self.raise_if_cancelled()

        memo = await job_runs.get_step(self.db, self.run_id, step_id)
        if memo is not None:
            logger.debug("Run %s: step %s already completed, reusing output", self.run_id, step_id)
            return memo["output"]

        policy = self.runtime.retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                output = await fn()
                break
            except (JobCancelled, NonRetriableError, StepFailedError):
                raise
            except Exception as e:
                if not policy.should_retry(e, attempt):
                    raise StepFailedError(step_id, attempt, e) from e
                delay = policy.calculate_delay(attempt)
                logger.warning(
                    "Run %s: step %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    self.run_id, step_id, attempt, policy.max_attempts, delay, e,
                )
                await self._wait(delay)

        await job_runs.save_step(self.db, self.run_id, step_id, output, attempt)
        return output

    async def sleep(self, step_id: str, seconds: float) -> None:
        """Durable sleep: a resumed run only waits for whatever time is left."""
        step_id = self._unique(step_id)
        await self.raise_if_cancelled()

        memo = await job_runs.get_step(self.db, self.run_id, step_id)
        if memo is not None:
            wake_at = datetime.fromisoformat(memo["output"]["wakeAt"])
        else:
            wake_at = datetime.now(timezone.utc) + timedelta(seconds=seconds)
            await job_runs.save_step(
                self.db, self.run_id, step_id, {"wakeAt": wake_at.isoformat()}, 1
            )

        remaining = (wake_at - datetime.now(timezone.utc)).total_seconds()
        if remaining > 0:
            await self._wait(remaining)

    async def is_cancelled(self) -> bool:
        if self._cancel_event is None:
            return False
        if self._cancel_event.is_set():
            return True
        status = await job_runs.get_job_run_status(self.db, self.run_id)
        if status == "cancelled":
            self._cancel_event.set()
            return True
        return False

    async def raise_if_cancelled(self) -> None:
        if await self.is_cancelled():
            raise JobCancelled(self.run_id)

    async def _wait(self, seconds: float) -> None:
        if self._cancel_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise JobCancelled(self.run_id)

    def _unique(self, step_id: str) -> str:
        step_id = f"{self._prefix}{step_id}"
        self._seen[step_id] += 1
        count = self._seen[step_id]
        return step_id if count == 1 else f"{step_id}:{count}"


class JobRuntime:
    """In-process trigger bus plus durable executor for registered job functions."""

    def __init__(
        self,
        db: Optional[databases.Database] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.db = db
        self.retry_policy = retry_policy or RetryPolicy()
        self._functions: Dict[str, JobFunction] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cancel_events: Dict[str, asyncio.Event] = {}

    def bind(self, db: databases.Database, retry_policy: Optional[RetryPolicy] = None) -> None:
        self.db = db
        if retry_policy is not None:
            self.retry_policy = retry_policy

    def register(self, function: JobFunction) -> None:
        if function.id in self._functions:
            raise ValueError(f"Job function '{function.id}' is already registered")
        self._functions[function.id] = function

    async def send(self, event_name: str, data: dict) -> List[str]:
        """Emit an event: apply cancel rules, then start every function it triggers.

        Returns the IDs of the runs that were started.
        """
        await self._apply_cancellations(event_name, data)

        run_ids = []
        for function in self._functions.values():
            if function.trigger != event_name:
                continue
            run = await job_runs.create_job_run(
                self.db,
                function.id,
                event_name,
                data,
                correlation_id=function.correlation_id(data),
            )
            self._schedule(run)
            run_ids.append(run["id"])

        logger.info("Event %s delivered, started %d run(s)", event_name, len(run_ids))
        return run_ids

    async def cancel_run(self, run_id: str) -> None:
        """Flag a queued/running run as cancelled. The run stops at its next step."""
        await job_runs.mark_job_run(
            self.db, run_id, "cancelled", only_if=job_runs.ACTIVE_STATUSES
        )
        cancel_event = self._cancel_events.get(run_id)
        if cancel_event is not None:
            cancel_event.set()
        logger.info("Run %s flagged for cancellation", run_id)

    async def resume_incomplete(self) -> int:
        """Reschedule runs left queued/running by a previous process."""
        resumed = 0
        for run in await job_runs.list_active_runs(self.db):
            if run["id"] in self._tasks:
                continue
            self._schedule(run)
            resumed += 1
        if resumed:
            logger.info("Resumed %d incomplete job run(s)", resumed)
        return resumed

    async def wait(self, run_id: str) -> None:
        """Wait for an in-process run to finish (used by tests and shutdown)."""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        """Wait until no run is executing in this process."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop in-process tasks. Persisted runs stay active and resume on next start."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _apply_cancellations(self, event_name: str, data: dict) -> None:
        for function in self._functions.values():
            for rule in function.cancel_on:
                if rule.event != event_name or data.get(rule.match) is None:
                    continue
                runs = await job_runs.list_active_runs(
                    self.db, function.id, str(data[rule.match])
                )
                for run in runs:
                    await self.cancel_run(run["id"])

    def _schedule(self, run: dict) -> None:
        run_id = run["id"]
        self._cancel_events.setdefault(run_id, asyncio.Event())
        task = asyncio.create_task(self._execute(run), name=f"job:{run['functionId']}:{run_id}")
        self._tasks[run_id] = task
        task.add_done_callback(lambda _task, rid=run_id: self._forget(rid))

    def _forget(self, run_id: str) -> None:
        self._tasks.pop(run_id, None)
        self._cancel_events.pop(run_id, None)

    async def _execute(self, run: dict) -> None:
        run_id = run["id"]
        function = self._functions.get(run["functionId"])
        if function is None:
            logger.error("Run %s references unknown function %s", run_id, run["functionId"])
            await job_runs.mark_job_run(self.db, run_id, "failed", error="Unknown function")
            return

        if await job_runs.get_job_run_status(self.db, run_id) == "cancelled":
            logger.info("Run %s was cancelled before it started", run_id)
            return

        await job_runs.mark_job_run(
            self.db, run_id, "running", only_if=job_runs.ACTIVE_STATUSES
        )
        event = JobEvent(name=run["eventName"], data=run["eventData"], run_id=run_id)
        step = StepContext(self, run_id, self._cancel_events.get(run_id))

        try:
            await function.handler(event, step)
        except JobCancelled:
            logger.info("Run %s of %s stopped after cancellation", run_id, function.id)
            await job_runs.mark_job_run(self.db, run_id, "cancelled")
            return
        except Exception as e:
            if await step.is_cancelled():
                logger.info("Run %s of %s failed after cancellation: %s", run_id, function.id, e)
                return
            logger.exception("Run %s of %s failed: %s", run_id, function.id, e)
            await job_runs.mark_job_run(self.db, run_id, "failed", error=str(e))
            await self._run_failure_handler(function, event, e)
            return

        await job_runs.mark_job_run(self.db, run_id, "completed", only_if=("running",))
        logger.info("Run %s of %s completed", run_id, function.id)

    async def _run_failure_handler(
        self, function: JobFunction, event: JobEvent, error: BaseException
    ) -> None:
        if function.on_failure is None:
            return
        step = StepContext(self, event.run_id, prefix="on-failure:")
        try:
            await function.on_failure(event, error, step)
        except Exception:
            logger.exception("Failure handler of %s raised for run %s", function.id, event.run_id)


# Singleton instance, bound to the database at startup
job_runtime = JobRuntime()
