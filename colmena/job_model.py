"""Job states, events and the human-readable descriptions of jobs."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

# Rough maximum length of a node list description.
_ROUGH_LIMIT = 40
_OTHER_TEXT = ", and XX other nodes"
_SOME_NODES = "some node(s)"


class JobState(Enum):
    """The state of a job."""

    WAITING = "Waiting"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    def __str__(self) -> str:
        return self.value

    def is_final(self) -> bool:
        """Whether a job in this state can no longer change."""
        return self in (JobState.FAILED, JobState.SUCCEEDED)


class JobType(Enum):
    """The type of a job."""

    META = "Meta"
    EVALUATE = "Evaluate"
    BUILD = "Build"
    UPLOAD_KEYS = "UploadKeys"
    PUSH = "Push"
    ACTIVATE = "Activate"
    EXECUTE = "Execute"
    CREATE_GC_ROOTS = "CreateGcRoots"
    REBOOT = "Reboot"


class EventKind(Enum):
    """What an event reports about a job."""

    CREATION = "creation"
    SUCCESS_WITH_MESSAGE = "success_with_message"
    FAILURE = "failure"
    NOOP = "noop"
    NEW_STATE = "new_state"
    CHILD_STDOUT = "child_stdout"
    CHILD_STDERR = "child_stderr"
    MESSAGE = "message"
    SHUTDOWN_MONITOR = "shutdown_monitor"


@dataclass(frozen=True)
class Event:
    """An event sent from a job to the monitor.

    ``text`` carries the message for text events, ``state`` the new state
    for NEW_STATE, and ``job_type``/``nodes`` the metadata for CREATION.
    """

    job_id: uuid.UUID
    kind: EventKind
    text: str = ""
    state: JobState | None = None
    job_type: JobType | None = None
    nodes: tuple[str, ...] = ()

    @property
    def privileged(self) -> bool:
        """Whether only the meta job may send this event."""
        return self.kind is EventKind.SHUTDOWN_MONITOR

    def __str__(self) -> str:
        kind = self.kind
        if kind is EventKind.CHILD_STDOUT:
            return f"  stdout) {self.text}"
        if kind is EventKind.CHILD_STDERR:
            return f"  stderr) {self.text}"
        if kind is EventKind.MESSAGE:
            return f" message) {self.text}"
        if kind is EventKind.CREATION:
            return " created)"
        if kind is EventKind.NEW_STATE:
            return f"   state) {self.state}"
        if kind is EventKind.SUCCESS_WITH_MESSAGE:
            return f" success) {self.text}"
        if kind is EventKind.NOOP:
            return f"    noop) {self.text}"
        if kind is EventKind.FAILURE:
            return f" failure) {self.text}"
        return "shutdown)"


@dataclass
class JobMetadata:
    """What the monitor knows about one job."""

    job_id: uuid.UUID
    job_type: JobType
    nodes: list[str] = field(default_factory=list)
    state: JobState = JobState.WAITING
    custom_message: str | None = None

    def label(self) -> str:
        """A short label for the job's progress line."""
        if self.job_type is JobType.META:
            return ""
        if len(self.nodes) != 1:
            return "(...)"
        return self.nodes[0]

    def describe_state_transition(self) -> str | None:
        """Describe the transition into the current state; None while waiting."""
        if self.state is JobState.WAITING:
            return None

        node_list = describe_node_list(self.nodes) or _SOME_NODES
        message = self.custom_message if self.custom_message is not None else "No message"
        job_type, state = self.job_type, self.state

        running = state is JobState.RUNNING
        succeeded = state is JobState.SUCCEEDED
        failed = state is JobState.FAILED

        if job_type is JobType.META and succeeded:
            return "All done!"

        if job_type is JobType.EVALUATE:
            if running:
                return f"Evaluating {node_list}"
            if succeeded:
                return f"Evaluated {node_list}"
            return f"Evaluation failed: {message}"

        if job_type is JobType.BUILD:
            if running:
                return f"Building {node_list}"
            if succeeded:
                return f"Built {node_list}"
            return f"Build failed: {message}"

        if job_type is JobType.PUSH:
            if running:
                return "Pushing system closure"
            if succeeded:
                return "Pushed system closure"
            return f"Push failed: {message}"

        if job_type is JobType.UPLOAD_KEYS:
            if running:
                return "Uploading keys"
            if succeeded:
                return "Uploaded keys"
            return f"Key upload failed: {message}"

        if job_type is JobType.ACTIVATE:
            if running:
                return "Activating system profile"
            if failed:
                return f"Activation failed: {message}"

        if job_type is JobType.REBOOT:
            if running:
                return "Rebooting"
            if succeeded:
                return "Rebooted"
            return f"Reboot failed: {message}"

        if failed:
            return f"Failed: {message}"
        if succeeded:
            return "Succeeded"
        return ""

    def failure_summary(self) -> str:
        """Describe this job as a failure, for the final summary."""
        node_list = describe_node_list(self.nodes) or _SOME_NODES
        summaries = {
            JobType.EVALUATE: f"Failed to evaluate {node_list}",
            JobType.BUILD: f"Failed to build {node_list}",
            JobType.PUSH: f"Failed to push system closure to {node_list}",
            JobType.UPLOAD_KEYS: f"Failed to upload keys to {node_list}",
            JobType.ACTIVATE: f"Failed to deploy to {node_list}",
            JobType.REBOOT: f"Failed to reboot {node_list}",
            JobType.META: "Failed to complete requested operation",
        }
        return summaries.get(self.job_type, f"Failed to complete job on {node_list}")


@dataclass(frozen=True)
class JobStats:
    """Counts of non-meta jobs in each state."""

    waiting: int = 0
    running: int = 0
    succeeded: int = 0
    failed: int = 0

    def __str__(self) -> str:
        parts = [
            f"{count} {name}"
            for count, name in (
                (self.running, "running"),
                (self.succeeded, "succeeded"),
                (self.failed, "failed"),
                (self.waiting, "waiting"),
            )
            if count
        ]
        return ", ".join(parts)


def describe_node_list(nodes: Sequence[str]) -> str | None:
    """Describe a list of nodes, e.g. "alpha, beta, and 5 other nodes".

    Returns None for an empty list.
    """
    total = len(nodes)
    if total == 0:
        return None

    text = ""
    for index, node in enumerate(nodes):
        is_last = index == total - 1
        if text:
            if is_last:
                text += ", and " if total > 2 else " and "
            else:
                text += ", "
        text += node

        if is_last:
            break

        following = nodes[index + 1]
        remaining = _ROUGH_LIMIT - len(text)
        if len(following) + len(_OTHER_TEXT) >= remaining:
            text += f", and {total - (index + 1)} other nodes"
            break

    return text