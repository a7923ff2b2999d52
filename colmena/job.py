"""Job control.

Jobs send events over a queue to a job monitor, which keeps track of
their states and forwards human-readable progress lines to an optional
progress sink.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterable, TypeVar

from .errors import ColmenaError, UnknownError, unknown
from .job_model import (
    Event,
    EventKind,
    JobMetadata,
    JobState,
    JobStats,
    JobType,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Maximum log lines to print for failures.
LOG_CONTEXT_LINES = 20


class LineStyle(Enum):
    """How a progress line is rendered."""

    NORMAL = "normal"
    SUCCESS = "success"
    SUCCESS_NOOP = "success_noop"
    FAILURE = "failure"


@dataclass(frozen=True)
class ProgressLine:
    """A line of progress output belonging to one job."""

    job_id: uuid.UUID
    text: str
    style: LineStyle = LineStyle.NORMAL
    label: str = ""
    noisy: bool = False


class ProgressKind(Enum):
    """The kind of a message sent to the progress sink."""

    HINT_LABEL_WIDTH = "hint_label_width"
    PRINT = "print"
    PRINT_META = "print_meta"
    COMPLETE = "complete"


@dataclass(frozen=True)
class ProgressMessage:
    """A message for the progress sink."""

    kind: ProgressKind
    line: ProgressLine | None = None
    width: int | None = None


ProgressSink = Callable[[ProgressMessage], None]


class _Channel:
    """The sending side shared by all handles of one monitor."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[Event] = asyncio.Queue()
        self.closed = False

    def send(self, event: Event) -> None:
        if self.closed:
            raise unknown(RuntimeError("channel closed"))
        self.queue.put_nowait(event)


def _line_for(metadata: JobMetadata, text: str) -> ProgressLine:
    if metadata.state is JobState.SUCCEEDED:
        style = LineStyle.SUCCESS
    elif metadata.state is JobState.FAILED:
        style = LineStyle.FAILURE
    else:
        style = LineStyle.NORMAL
    return ProgressLine(metadata.job_id, text, style=style, label=metadata.label())


class JobHandle:
    """A handle to a job, used to report its progress to the monitor."""

    def __init__(self, job_id: uuid.UUID | None = None, channel: _Channel | None = None) -> None:
        self.job_id = job_id if job_id is not None else uuid.uuid4()
        self._channel = channel

    def __repr__(self) -> str:
        return f"JobHandle({self.job_id})"

    def create_job(self, job_type: JobType, nodes: Iterable[str]) -> JobHandle:
        """Create a new job with a distinct ID and announce it to the monitor."""
        if job_type is JobType.META:
            raise UnknownError("Cannot create a meta job!")
        handle = JobHandle(uuid.uuid4(), self._channel)
        handle._send(
            Event(handle.job_id, EventKind.CREATION, job_type=job_type, nodes=tuple(nodes))
        )
        return handle

    async def run(self, f: Callable[[JobHandle], Awaitable[T]]) -> T:
        """Run ``f``, marking the job Running first and then its outcome."""
        return await self._run_internal(f, report_running=True)

    async def run_waiting(self, f: Callable[[JobHandle], Awaitable[T]]) -> T:
        """Run ``f`` without marking the job Running first."""
        return await self._run_internal(f, report_running=False)

    def stdout(self, output: str) -> None:
        self._send(Event(self.job_id, EventKind.CHILD_STDOUT, text=output))

    def stderr(self, output: str) -> None:
        self._send(Event(self.job_id, EventKind.CHILD_STDERR, text=output))

    def message(self, message: str) -> None:
        self._send(Event(self.job_id, EventKind.MESSAGE, text=message))

    def state(self, new_state: JobState) -> None:
        self._send(Event(self.job_id, EventKind.NEW_STATE, state=new_state))

    def success_with_message(self, message: str) -> None:
        self._send(Event(self.job_id, EventKind.SUCCESS_WITH_MESSAGE, text=message))

    def noop(self, message: str) -> None:
        """Mark the job as succeeded without having changed anything."""
        self._send(Event(self.job_id, EventKind.NOOP, text=message))

    def failure(self, error: BaseException) -> None:
        self._send(Event(self.job_id, EventKind.FAILURE, text=str(error)))

    async def _run_internal(
        self, f: Callable[[JobHandle], Awaitable[T]], report_running: bool
    ) -> T:
        if report_running:
            self.state(JobState.RUNNING)
        try:
            value = await f(self)
        except Exception as error:
            self.failure(error)
            raise
        self.state(JobState.SUCCEEDED)
        return value

    def _send(self, event: Event) -> None:
        if event.privileged:
            raise ValueError("Tried to send privileged payload with JobHandle")
        if self._channel is None:
            logger.debug("Sending event: %s", event)
            return
        self._channel.send(event)


class MetaJobHandle:
    """The handle of the meta job; finishing it shuts the monitor down."""

    def __init__(self, job_id: uuid.UUID, channel: _Channel) -> None:
        self.job_id = job_id
        self._channel = channel

    async def run(self, f: Callable[[JobHandle], Awaitable[T]]) -> T:
        """Run ``f`` as the meta job, then tell the monitor to shut down."""
        handle = JobHandle(self.job_id, self._channel)
        try:
            value = await f(handle)
        except Exception as error:
            self._send(Event(self.job_id, EventKind.FAILURE, text=str(error)))
            self._send(Event(self.job_id, EventKind.SHUTDOWN_MONITOR))
            raise
        self._send(Event(self.job_id, EventKind.NEW_STATE, state=JobState.SUCCEEDED))
        self._send(Event(self.job_id, EventKind.SHUTDOWN_MONITOR))
        return value

    def _send(self, event: Event) -> None:
        self._channel.send(event)


@dataclass
class JobMonitor:
    """Coordinator of all job states.

    It receives events from jobs and forwards progress to ``progress``.
    """

    progress: ProgressSink | None = None
    finish_delay: float = 1.0
    label_width: int | None = None
    events: list[Event] = field(default_factory=list, init=False)
    jobs: dict[uuid.UUID, JobMetadata] = field(default_factory=dict, init=False)
    meta: MetaJobHandle = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._channel = _Channel()
        self.meta_job_id = uuid.uuid4()
        self.jobs[self.meta_job_id] = JobMetadata(
            self.meta_job_id, JobType.META, state=JobState.RUNNING
        )
        self.meta = MetaJobHandle(self.meta_job_id, self._channel)

    def set_label_width(self, label_width: int) -> None:
        self.label_width = label_width

    def job_stats(self) -> JobStats:
        """Count the non-meta jobs in each state."""
        counts = {state: 0 for state in JobState}
        for job in self.jobs.values():
            if job.job_id != self.meta_job_id:
                counts[job.state] += 1
        return JobStats(
            waiting=counts[JobState.WAITING],
            running=counts[JobState.RUNNING],
            succeeded=counts[JobState.SUCCEEDED],
            failed=counts[JobState.FAILED],
        )

    async def run_until_completion(self) -> JobMonitor:
        """Process events until the meta job finishes."""
        if self.label_width is not None and self.progress is not None:
            self.progress(ProgressMessage(ProgressKind.HINT_LABEL_WIDTH, width=self.label_width))

        while True:
            event = await self._channel.queue.get()
            kind = event.kind

            if kind is EventKind.CREATION:
                if event.job_id in self.jobs:
                    raise UnknownError(f"Job {event.job_id} already exists")
                self.jobs[event.job_id] = JobMetadata(
                    event.job_id, event.job_type, nodes=list(event.nodes)
                )
            elif kind is EventKind.SHUTDOWN_MONITOR:
                if event.job_id != self.meta_job_id:
                    raise UnknownError("Only the meta job can shut down the monitor")
                return await self._finish()
            elif kind in (
                EventKind.NEW_STATE,
                EventKind.SUCCESS_WITH_MESSAGE,
                EventKind.NOOP,
                EventKind.FAILURE,
            ):
                if kind is EventKind.NEW_STATE:
                    self._update_job_state(event.job_id, event.state, None, noop=False)
                elif kind is EventKind.SUCCESS_WITH_MESSAGE:
                    self._update_job_state(event.job_id, JobState.SUCCEEDED, event.text, noop=False)
                elif kind is EventKind.NOOP:
                    self._update_job_state(event.job_id, JobState.SUCCEEDED, event.text, noop=True)
                else:
                    self._update_job_state(event.job_id, JobState.FAILED, event.text, noop=False)
                if event.job_id != self.meta_job_id:
                    self._print_job_stats()
            elif self.progress is not None:
                line = _line_for(self.jobs[event.job_id], event.text)
                self.progress(self._print_message(event.job_id, line))

            self.events.append(event)

    def _update_job_state(
        self, job_id: uuid.UUID, new_state: JobState, message: str | None, noop: bool
    ) -> None:
        metadata = self.jobs[job_id]
        old_state = metadata.state

        if old_state is new_state:
            return
        if old_state.is_final():
            logger.debug("Tried to update the state of a finished job")
            return

        metadata.state = new_state
        if message is not None:
            metadata.custom_message = message

        if new_state is JobState.WAITING or self.progress is None:
            return

        if new_state is JobState.SUCCEEDED and metadata.custom_message is not None:
            text: str | None = metadata.custom_message
        else:
            text = metadata.describe_state_transition()

        if text is None:
            return

        line = _line_for(metadata, text)
        if noop:
            line = ProgressLine(
                line.job_id, line.text, style=LineStyle.SUCCESS_NOOP, label=line.label
            )
        self.progress(self._print_message(job_id, line))

    def _print_job_stats(self) -> None:
        if self.progress is None:
            return
        meta = self.jobs[self.meta_job_id]
        base = _line_for(meta, str(self.job_stats()))
        line = ProgressLine(base.job_id, base.text, style=base.style, label=base.label, noisy=True)
        self.progress(ProgressMessage(ProgressKind.PRINT_META, line=line))

    def _print_message(self, job_id: uuid.UUID, line: ProgressLine) -> ProgressMessage:
        kind = ProgressKind.PRINT_META if job_id == self.meta_job_id else ProgressKind.PRINT
        return ProgressMessage(kind, line=line)

    async def _finish(self) -> JobMonitor:
        self._channel.closed = True
        if self.progress is not None:
            self.progress(ProgressMessage(ProgressKind.COMPLETE))
            self.progress = None

        if self.finish_delay > 0:
            await asyncio.sleep(self.finish_delay)

        for job in self.jobs.values():
            if job.state is not JobState.FAILED:
                continue
            logs = [event for event in self.events if event.job_id == job.job_id]
            last_logs = logs[-LOG_CONTEXT_LINES:]
            logger.error("%s - Last %d lines of logs:", job.failure_summary(), len(last_logs))
            for event in last_logs:
                logger.error("%s", event)

        return self


def create_monitor() -> tuple[JobMonitor, MetaJobHandle]:
    """Create a job monitor without progress output, with its meta job."""
    monitor = JobMonitor()
    return monitor, monitor.meta


def null_job_handle() -> JobHandle:
    """A job handle that is not connected to any monitor."""
    return JobHandle()


__all__ = [
    "ColmenaError",
    "JobHandle",
    "JobMonitor",
    "LineStyle",
    "MetaJobHandle",
    "ProgressKind",
    "ProgressLine",
    "ProgressMessage",
    "create_monitor",
    "null_job_handle",
]