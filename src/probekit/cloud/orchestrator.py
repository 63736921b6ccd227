"""
Cloud probe orchestrator.

Runs one remote task through create-then-poll:

    IDLE -> CREATING -> POLLING -> FINISHED | EXHAUSTED | FAILED

with CANCELLED reachable from any non-terminal state. A snapshot is
published after every poll, and each poll's result set replaces the
previous one.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import AsyncIterator

from probekit.cloud.client import CloudProbeClient
from probekit.cloud.models import CloudProbeResult, CloudProbeTask
from probekit.config import ProbeConfig, get_config
from probekit.errors import CloudProbeError
from probekit.logging_config import track_error
from probekit.session import Cancellable, SnapshotChannel

logger = logging.getLogger(__name__)


class CloudTaskState(str, Enum):
    """Lifecycle of a cloud probe task."""
    IDLE = "idle"
    CREATING = "creating"
    POLLING = "polling"
    FINISHED = "finished"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            CloudTaskState.FINISHED,
            CloudTaskState.EXHAUSTED,
            CloudTaskState.FAILED,
            CloudTaskState.CANCELLED,
        )


@dataclass(frozen=True)
class CloudSnapshot:
    """Published view of a cloud task."""
    state: CloudTaskState
    task: CloudProbeTask
    attempt: int = 0
    max_polls: int = 5
    result: CloudProbeResult = field(default_factory=CloudProbeResult)
    error: str | None = None
    return_code: int | None = None

    @property
    def task_id(self) -> int | None:
        return self.task.task_id


class CloudProbeOrchestrator(Cancellable):
    """Creates one remote task and polls it on a fixed schedule."""

    def __init__(
        self,
        task: CloudProbeTask,
        client: CloudProbeClient | None = None,
        max_polls: int | None = None,
        poll_interval: float | None = None,
        config: ProbeConfig | None = None,
    ):
        super().__init__()
        task.validate()
        self.config = config or get_config()
        self.task = task
        self.client = client or CloudProbeClient()
        self.max_polls = max_polls if max_polls is not None else self.config.cloud_max_polls
        if self.max_polls < 1:
            raise ValueError("max_polls must be positive")
        self.poll_interval = poll_interval if poll_interval is not None else self.config.cloud_poll_interval
        self.state = CloudTaskState.IDLE
        self.attempt = 0
        self.result = CloudProbeResult()
        self.error: str | None = None
        self.return_code: int | None = None
        self._channel: SnapshotChannel[CloudSnapshot] = SnapshotChannel()
        self._task: asyncio.Task | None = None

    def snapshot(self) -> CloudSnapshot:
        return CloudSnapshot(
            state=self.state,
            task=self.task,
            attempt=self.attempt,
            max_polls=self.max_polls,
            result=self.result,
            error=self.error,
            return_code=self.return_code,
        )

    @property
    def latest(self) -> CloudSnapshot | None:
        return self._channel.latest

    def start(self) -> asyncio.Task:
        if self._task is not None or self.state is not CloudTaskState.IDLE:
            raise RuntimeError("Cloud task already started")
        self._task = asyncio.create_task(self._run(), name="probekit-cloud")
        return self._task

    def cancel(self) -> None:
        """Stop polling. Results already received are kept."""
        self._cancel_event.set()
        if self._task is None and self.state is CloudTaskState.IDLE:
            self._finish(CloudTaskState.CANCELLED)

    async def wait(self) -> CloudSnapshot:
        if self._task is not None:
            await self._task
        return self._channel.latest

    async def run(self) -> CloudSnapshot:
        self.start()
        return await self.wait()

    def __aiter__(self) -> AsyncIterator[CloudSnapshot]:
        if self.state is CloudTaskState.IDLE and self._task is None:
            self.start()
        return self._channel.__aiter__()

    def _transition(self, state: CloudTaskState) -> None:
        self.state = state
        self._channel.publish(self.snapshot())

    def _finish(self, state: CloudTaskState) -> None:
        if self._channel.closed:
            return
        self._transition(state)
        self._channel.close()

    def _fail(self, step: str, error: CloudProbeError) -> None:
        self.error = error.details
        self.return_code = error.return_code
        track_error(
            f"cloud_{step}",
            error.details,
            context={"task_id": self.task.task_id, "return_code": error.return_code, "req_id": error.req_id},
        )
        self._finish(CloudTaskState.FAILED)

    async def _run(self) -> None:
        try:
            await self._execute()
        except asyncio.CancelledError:
            self._cancel_event.set()
            self._finish(CloudTaskState.CANCELLED)
            raise
        except Exception as e:
            self.error = str(e) or e.__class__.__name__
            track_error("cloud_task", self.error, exception=e, context={"task_id": self.task.task_id})
            self._finish(CloudTaskState.FAILED)
            raise

    async def _execute(self) -> None:
        self._transition(CloudTaskState.CREATING)
        try:
            completed, task_id = await self.until_cancelled(self.client.create_task(self.task))
        except CloudProbeError as e:
            self._fail("create", e)
            return
        if not completed:
            self._finish(CloudTaskState.CANCELLED)
            return

        self.task = replace(self.task, task_id=task_id)
        logger.info(f"Cloud task {task_id} created, polling up to {self.max_polls} times")
        self._transition(CloudTaskState.POLLING)

        for attempt in range(1, self.max_polls + 1):
            try:
                completed, result = await self.until_cancelled(
                    self.client.query_task_result(task_id, self.task.kind)
                )
            except CloudProbeError as e:
                self._fail("poll", e)
                return
            if not completed:
                self._finish(CloudTaskState.CANCELLED)
                return

            self.attempt = attempt
            self.result = result
            self._transition(CloudTaskState.POLLING)

            if result.finished:
                self._finish(CloudTaskState.FINISHED)
                return
            if attempt < self.max_polls and not await self.sleep(self.poll_interval):
                self._finish(CloudTaskState.CANCELLED)
                return

        logger.info(f"Cloud task {task_id} not finished after {self.max_polls} polls")
        self._finish(CloudTaskState.EXHAUSTED)
