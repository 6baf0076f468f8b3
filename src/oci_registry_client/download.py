"""
Concurrent multi-layer download orchestration.

Given a manifest's ordered layer list, the orchestrator fetches every unique
digest exactly once, one asyncio task per digest, and merges the tasks'
progress into a single table owned by one consumer loop.

Design Notes: progress accounting

Producers never touch the table. They push immutable ``ProgressEvent``
values onto an unbounded FIFO queue; the consumer drains it in delivery
order, replaces exactly the entry named by ``task_index`` and hands an
immutable snapshot of the whole table to the caller's ``on_progress``
callback. Events from different tasks may interleave arbitrarily; per-task
order is preserved by the queue.

A task is COMPLETED only on its explicit DONE event, which is sent after
end-of-stream, the byte count check against a known Content-Length, the
digest check (when verifying) and the sink commit. Tasks without a known
length therefore still complete, and a cancelled or failed task never does.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from functools import partial
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .blob import BlobReader
from .client import RegistryClient
from .digest import Digest
from .errors import LayerSizeConflict, TransportError
from .models import Layer
from .sinks import LayerSink, SinkFactory

logger = logging.getLogger(__name__)

__all__ = [
    "TaskState",
    "EventKind",
    "FailurePolicy",
    "ProgressEvent",
    "LayerProgress",
    "PlannedDownload",
    "DownloadPlan",
    "DownloadResult",
    "DownloadOrchestrator",
    "plan_downloads",
]


class TaskState(str, Enum):
    """Lifecycle of one download task."""
    UNKNOWN = "unknown"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.FAILED, TaskState.CANCELLED)


class EventKind(str, Enum):
    PROGRESS = "progress"
    DONE = "done"
    FAILED = "failed"


class FailurePolicy(str, Enum):
    """What the orchestrator does with sibling tasks when one fails."""
    CONTINUE = "continue"   # let the others finish
    ABORT = "abort"         # cancel every unfinished sibling


@dataclass(frozen=True)
class ProgressEvent:
    """Message sent from a download task to the consumer."""
    task_index: int
    digest: Digest
    downloaded: int
    total: Optional[int] = None
    kind: EventKind = EventKind.PROGRESS
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class LayerProgress:
    """One row of the progress table."""
    task_index: int
    digest: Digest
    downloaded: int = 0
    total: Optional[int] = None
    state: TaskState = TaskState.UNKNOWN
    error: Optional[BaseException] = None

    @property
    def percent(self) -> Optional[float]:
        """Completion percentage, or None when the total size is unknown."""
        if self.total is None:
            return None
        if self.total == 0:
            return 100.0
        return self.downloaded / self.total * 100.0

    @property
    def completed(self) -> bool:
        return self.state is TaskState.COMPLETED


@dataclass(frozen=True)
class PlannedDownload:
    """A unique digest scheduled for fetching, and every layer position it serves."""
    task_index: int
    layer: Layer
    positions: Tuple[int, ...]


@dataclass(frozen=True)
class DownloadPlan:
    tasks: Tuple[PlannedDownload, ...]
    position_to_task: Tuple[int, ...]

    def task_for_position(self, position: int) -> PlannedDownload:
        return self.tasks[self.position_to_task[position]]


def plan_downloads(layers: Sequence[Layer]) -> DownloadPlan:
    """
    Deduplicate layers by digest, keeping first-occurrence order.

    Raises:
        LayerSizeConflict: If equal digests declare different sizes
    """
    scheduled: Dict[Digest, int] = {}
    firsts: List[Layer] = []
    positions: List[List[int]] = []
    position_to_task: List[int] = []

    for position, layer in enumerate(layers):
        task_index = scheduled.get(layer.digest)
        if task_index is None:
            task_index = len(firsts)
            scheduled[layer.digest] = task_index
            firsts.append(layer)
            positions.append([position])
            logger.debug(f"Layer {position}: scheduling {layer.digest} as task {task_index}")
        else:
            first = firsts[task_index]
            if first.size != layer.size:
                raise LayerSizeConflict(str(layer.digest), [first.size, layer.size])
            positions[task_index].append(position)
            logger.debug(f"Layer {position}: {layer.digest} already scheduled as task {task_index}")
        position_to_task.append(task_index)

    tasks = tuple(
        PlannedDownload(task_index=i, layer=layer, positions=tuple(positions[i]))
        for i, layer in enumerate(firsts)
    )
    return DownloadPlan(tasks=tasks, position_to_task=tuple(position_to_task))


@dataclass(frozen=True)
class DownloadResult:
    """Final progress table of a run."""
    plan: DownloadPlan
    progress: Tuple[LayerProgress, ...]

    @property
    def completed(self) -> bool:
        return all(p.completed for p in self.progress)

    @property
    def failures(self) -> Tuple[LayerProgress, ...]:
        return tuple(p for p in self.progress if p.state is TaskState.FAILED)

    @property
    def cancelled(self) -> Tuple[LayerProgress, ...]:
        return tuple(p for p in self.progress if p.state is TaskState.CANCELLED)

    def for_layer(self, position: int) -> LayerProgress:
        return self.progress[self.plan.position_to_task[position]]


ProgressCallback = Callable[[Tuple[LayerProgress, ...]], None]

# Queued by cancel() to wake the consumer
_STOP = object()


class DownloadOrchestrator:
    """
    Download every unique layer of an image concurrently.

    Args:
        client: Shared registry client (token already installed if needed)
        image: Repository name, e.g. "library/alpine"
        sink_factory: Returns a fresh, exclusively owned sink for a digest
        verify: Hash streamed bytes and fail tasks whose digest differs
        failure_policy: Whether one failure cancels the remaining tasks
        chunk_size: Optional fixed chunk size; None yields chunks as received
    """

    def __init__(
        self,
        client: RegistryClient,
        image: str,
        sink_factory: SinkFactory,
        *,
        verify: bool = True,
        failure_policy: FailurePolicy = FailurePolicy.CONTINUE,
        chunk_size: Optional[int] = None,
    ):
        self.client = client
        self.image = image
        self.sink_factory = sink_factory
        self.verify = verify
        self.failure_policy = FailurePolicy(failure_policy)
        self.chunk_size = chunk_size
        self._tasks: List[asyncio.Task] = []
        self._queue: Optional[asyncio.Queue] = None
        self._cancelled = False

    async def run(self, layers: Sequence[Layer], on_progress: Optional[ProgressCallback] = None) -> DownloadResult:
        """
        Download ``layers`` and return the final progress table.

        Task failures are reported in the table, not raised. Cancelling the
        coroutine running ``run()`` cancels every download before re-raising.
        If ``cancel()`` was called before ``run()``, nothing is fetched and
        every entry is reported CANCELLED.

        Raises:
            LayerSizeConflict: If the layer list is inconsistent
        """
        plan = plan_downloads(layers)
        table = [LayerProgress(task_index=t.task_index, digest=t.layer.digest) for t in plan.tasks]
        if not plan.tasks:
            return DownloadResult(plan=plan, progress=())

        if self._cancelled:
            logger.info(f"Download of {self.image} cancelled before it started")
            self._mark_unfinished_cancelled(table)
            self._emit(table, on_progress)
            return DownloadResult(plan=plan, progress=tuple(table))

        logger.info(
            f"Downloading {len(plan.tasks)} unique blob(s) for {len(layers)} layer(s) of {self.image}"
        )
        queue: asyncio.Queue = asyncio.Queue()
        self._queue = queue
        self._tasks = []
        for planned in plan.tasks:
            task = asyncio.create_task(self._download(planned, queue), name=f"download-{planned.layer.digest}")
            task.add_done_callback(partial(self._report_crash, planned, queue))
            self._tasks.append(task)
        try:
            await self._consume(table, queue, on_progress)
        finally:
            await self._shutdown()

        return DownloadResult(plan=plan, progress=tuple(table))

    def cancel(self) -> None:
        """
        Stop all in-flight downloads.

        ``run()`` returns once the queued events are drained, with every
        unfinished task marked CANCELLED. Calling this before ``run()``
        cancels that run up front.
        """
        self._cancelled = True
        for task in self._tasks:
            task.cancel()
        if self._queue is not None:
            self._queue.put_nowait(_STOP)

    async def _consume(self, table: List[LayerProgress], queue: asyncio.Queue,
                       on_progress: Optional[ProgressCallback]) -> None:
        remaining = len(table)
        while remaining:
            event = await queue.get()

            if event is _STOP:
                logger.info(f"Download of {self.image} cancelled")
                self._mark_unfinished_cancelled(table)
                self._emit(table, on_progress)
                return

            if not self._record(table, event):
                continue
            if table[event.task_index].state.terminal:
                remaining -= 1
            self._emit(table, on_progress)

            updated = table[event.task_index]
            if updated.state is TaskState.FAILED and self.failure_policy is FailurePolicy.ABORT:
                logger.warning(f"Aborting remaining downloads after {updated.digest} failed")
                for task in self._tasks:
                    task.cancel()
                # Outcomes already queued happened before the abort
                while not queue.empty():
                    pending = queue.get_nowait()
                    if pending is not _STOP:
                        self._record(table, pending)
                self._mark_unfinished_cancelled(table)
                self._emit(table, on_progress)
                return

    def _record(self, table: List[LayerProgress], event: ProgressEvent) -> bool:
        """Apply ``event`` to its row; False if the row was already final."""
        entry = table[event.task_index]
        if entry.state.terminal:
            return False
        table[event.task_index] = self._apply(entry, event)
        return True

    @staticmethod
    def _apply(entry: LayerProgress, event: ProgressEvent) -> LayerProgress:
        if event.kind is EventKind.FAILED:
            return replace(entry, downloaded=max(entry.downloaded, event.downloaded),
                           total=event.total if event.total is not None else entry.total,
                           state=TaskState.FAILED, error=event.error)

        if event.kind is EventKind.DONE:
            if event.total is not None and event.downloaded != event.total:
                error = TransportError(f"Blob {event.digest} ended at {event.downloaded} of {event.total} bytes")
                return replace(entry, downloaded=event.downloaded, total=event.total,
                               state=TaskState.FAILED, error=error)
            return replace(entry, downloaded=event.downloaded, total=event.total, state=TaskState.COMPLETED)

        return replace(entry, downloaded=event.downloaded, total=event.total, state=TaskState.DOWNLOADING)

    @staticmethod
    def _mark_unfinished_cancelled(table: List[LayerProgress]) -> None:
        for i, entry in enumerate(table):
            if not entry.state.terminal:
                table[i] = replace(entry, state=TaskState.CANCELLED)

    @staticmethod
    def _emit(table: List[LayerProgress], on_progress: Optional[ProgressCallback]) -> None:
        if on_progress is not None:
            on_progress(tuple(table))

    @staticmethod
    def _report_crash(planned: PlannedDownload, queue: asyncio.Queue, task: asyncio.Task) -> None:
        """Turn a task that died without a terminal event into a FAILED event."""
        if task.cancelled() or task.exception() is None:
            return
        error = task.exception()
        logger.error(f"Download task for {planned.layer.digest} crashed: {error!r}")
        queue.put_nowait(ProgressEvent(planned.task_index, planned.layer.digest, 0,
                                       kind=EventKind.FAILED, error=error))

    async def _download(self, planned: PlannedDownload, queue: asyncio.Queue) -> None:
        index = planned.task_index
        digest = planned.layer.digest
        sink: Optional[LayerSink] = None
        downloaded = 0
        total: Optional[int] = None

        try:
            handle = await self.client.open_blob(self.image, digest)
            total = handle.content_length
            try:
                reader = BlobReader(handle, verify=self.verify, chunk_size=self.chunk_size)
            except BaseException:
                await handle.aclose()
                raise
            try:
                sink = self.sink_factory(digest)
                while True:
                    chunk = await reader.next_chunk()
                    if chunk is None:
                        break
                    sink.write(chunk)
                    downloaded += len(chunk)
                    queue.put_nowait(ProgressEvent(index, digest, downloaded, total))
            finally:
                await reader.aclose()

            if total is not None and downloaded != total:
                raise TransportError(f"Blob {digest} ended at {downloaded} of {total} bytes")
            if reader.verifying:
                reader.verify_against(digest)
            sink.commit()
        except asyncio.CancelledError:
            _discard(sink, digest)
            logger.debug(f"Download of {digest} cancelled after {downloaded} bytes")
            raise
        except Exception as e:
            _discard(sink, digest)
            logger.warning(f"Download of {digest} failed after {downloaded} bytes: {e}")
            queue.put_nowait(ProgressEvent(index, digest, downloaded, total, kind=EventKind.FAILED, error=e))
            return

        logger.debug(f"Download of {digest} completed ({downloaded} bytes)")
        queue.put_nowait(ProgressEvent(index, digest, downloaded, total, kind=EventKind.DONE))

    async def _shutdown(self) -> None:
        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queue = None


def _discard(sink: Optional[LayerSink], digest: Digest) -> None:
    """Drop partial output; a failing discard is logged so the task still reports."""
    if sink is None:
        return
    try:
        sink.discard()
    except Exception as e:
        logger.error(f"Could not discard partial output for {digest}: {e}")
