"""
Probe session base.

A session owns one measurement run against one target. It publishes
immutable snapshots of its results through a channel; the last snapshot,
carrying a terminal state, is the authoritative final result. Each
session is written only by itself and by enrichment annotations keyed
by address.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Generic, TypeVar

from probekit.config import ProbeConfig, get_config
from probekit.enrich import AnnotationStore, Enricher
from probekit.errors import AddressFamilyUnavailable, ResolutionError
from probekit.logging_config import track_error
from probekit.models import ErrorKind, IPPreference, ProbeFailure, ResolvedTarget, SessionState
from probekit.transport.base import Transport

logger = logging.getLogger(__name__)

S = TypeVar("S")

_CLOSED = object()


class SnapshotChannel(Generic[S]):
    """Ordered stream of snapshots with a single producer."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._latest: S | None = None
        self._closed = False

    @property
    def latest(self) -> S | None:
        return self._latest

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, snapshot: S) -> bool:
        if self._closed:
            return False
        self._latest = snapshot
        self._queue.put_nowait(snapshot)
        return True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[S]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                # Leave the marker for any later iterator
                self._queue.put_nowait(_CLOSED)
                return
            yield item


class Cancellable:
    """Cooperative cancellation shared by sessions and the cloud orchestrator."""

    def __init__(self):
        self._cancel_event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def sleep(self, delay: float) -> bool:
        """Sleep unless cancelled. Returns False if cancelled."""
        if self.cancelled:
            return False
        if delay <= 0:
            await asyncio.sleep(0)
            return not self.cancelled
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False

    async def until_cancelled(self, aw: Awaitable[Any]) -> tuple[bool, Any]:
        """
        Await aw unless cancellation comes first.

        Returns (True, result) on completion and (False, None) when
        cancelled, in which case aw is abandoned.
        """
        task = asyncio.ensure_future(aw)
        if self.cancelled:
            task.cancel()
            return False, None

        waiter = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        # Cancellation wins even if the reply landed in the same tick
        if not self.cancelled:
            return True, task.result()
        if not task.done():
            task.cancel()
        elif not task.cancelled():
            task.exception()
        return False, None


class ProbeSession(Cancellable, ABC, Generic[S]):
    """
    Base class for Ping, Traceroute, TCP, UDP and DNS sessions.

    Subclasses implement execute() and snapshot(). Cancellation is
    cooperative: cancel() stops new probes from being issued, replies
    still in flight are dropped, and results already published stay.
    """

    tool = "probe"

    def __init__(
        self,
        transport: Transport | None = None,
        enricher: Enricher | None = None,
        config: ProbeConfig | None = None,
    ):
        super().__init__()
        self.config = config or get_config()
        if transport is None:
            from probekit.transport.system import SystemTransport
            transport = SystemTransport()
        self.transport = transport
        self.enricher = enricher
        self.state = SessionState.IDLE
        self.failure: ProbeFailure | None = None
        self.annotations = AnnotationStore()
        self._channel: SnapshotChannel[S] = SnapshotChannel()
        self._task: asyncio.Task | None = None
        self._enrichments: dict[str, asyncio.Task] = {}

    @abstractmethod
    def snapshot(self) -> S:
        """Build an immutable view of the current results."""
        raise NotImplementedError

    @abstractmethod
    async def execute(self) -> None:
        """Run the measurement, publishing as results arrive."""
        raise NotImplementedError

    @property
    def latest(self) -> S | None:
        """Most recently published snapshot."""
        return self._channel.latest

    def start(self) -> asyncio.Task:
        """Schedule the session on the running event loop."""
        if self._task is not None or self.state is not SessionState.IDLE:
            raise RuntimeError(f"{self.tool} session already started")
        self._task = asyncio.create_task(self._run(), name=f"probekit-{self.tool}")
        return self._task

    def cancel(self) -> None:
        """Stop issuing probes. Safe to call more than once."""
        self._cancel_event.set()
        if self._task is None and self.state is SessionState.IDLE:
            self._finish(SessionState.CANCELLED)

    async def wait(self) -> S:
        """Wait for the terminal snapshot."""
        if self._task is not None:
            await self._task
        return self._channel.latest

    async def run(self) -> S:
        """Start the session and wait for its final snapshot."""
        self.start()
        return await self.wait()

    def __aiter__(self) -> AsyncIterator[S]:
        if self.state is SessionState.IDLE and self._task is None:
            self.start()
        return self._channel.__aiter__()

    def publish(self) -> None:
        self._channel.publish(self.snapshot())

    async def _run(self) -> None:
        self.state = SessionState.RUNNING
        self.publish()
        try:
            await self.execute()
        except AddressFamilyUnavailable as e:
            self._fail(ErrorKind.FAMILY_UNAVAILABLE, str(e))
            return
        except ResolutionError as e:
            self._fail(ErrorKind.RESOLUTION, str(e))
            return
        except asyncio.CancelledError:
            self._cancel_event.set()
            self._finish(SessionState.CANCELLED)
            raise
        except Exception as e:
            track_error(f"{self.tool}_session", str(e), exception=e)
            self.failure = ProbeFailure(ErrorKind.PROTOCOL, str(e) or e.__class__.__name__)
            self._finish(SessionState.FAILED)
            raise

        if self.cancelled:
            self._finish(SessionState.CANCELLED)
            return

        await self._drain_enrichment()
        self._finish(SessionState.COMPLETED)

    def _fail(self, kind: ErrorKind, reason: str) -> None:
        logger.info(f"{self.tool} session failed: {reason}")
        track_error(kind.value, reason, context={"tool": self.tool})
        self.failure = ProbeFailure(kind, reason)
        self._finish(SessionState.FAILED)

    def _finish(self, state: SessionState) -> None:
        if self._channel.closed:
            return
        self.state = state
        for task in self._enrichments.values():
            if not task.done():
                task.cancel()
        self.annotations.close()
        self.publish()
        self._channel.close()

    async def resolve_target(self, host: str, preference: IPPreference = IPPreference.AUTO) -> ResolvedTarget:
        """
        Resolve the target and confirm its IP version is routable locally.

        Raises:
            ResolutionError: If the host does not resolve
            AddressFamilyUnavailable: If there is no route for the family
        """
        target = await self.transport.resolve(host, preference)
        if not await self.transport.family_available(target.family):
            raise AddressFamilyUnavailable(
                f"No {target.family.name.replace('IPV', 'IPv')} route available to reach {target.address}"
            )
        return target

    def enrich(self, address: str | None) -> None:
        """Request annotations for an address without waiting for them."""
        if self.enricher is None or not address:
            return
        if address in self._enrichments or self.annotations.closed:
            return
        self._enrichments[address] = asyncio.create_task(self._annotate(address))

    async def _annotate(self, address: str) -> None:
        try:
            annotation = await self.enricher.annotate(address)
        except Exception as e:
            logger.warning(f"Enrichment for {address} failed: {e}")
            track_error("enrichment", str(e), exception=e, context={"address": address})
            return
        if self.annotations.apply(address, annotation):
            self.publish()

    async def _drain_enrichment(self) -> None:
        pending = [t for t in self._enrichments.values() if not t.done()]
        if pending:
            await asyncio.wait(pending, timeout=self.config.enrichment_timeout)


class SessionRegistry:
    """
    Running sessions for one caller, at most one per tool.

    Starting a session cancels any unfinished session of the same tool.
    """

    def __init__(self):
        self._sessions: dict[str, ProbeSession] = {}

    def start(self, session: ProbeSession) -> asyncio.Task:
        previous = self._sessions.get(session.tool)
        if previous is not None and previous is not session and not previous.state.is_terminal:
            logger.debug(f"Cancelling previous {session.tool} session")
            previous.cancel()
        self._sessions[session.tool] = session
        return session.start()

    def get(self, tool: str) -> ProbeSession | None:
        return self._sessions.get(tool)

    def cancel_all(self) -> None:
        for session in self._sessions.values():
            session.cancel()
