import asyncio
import logging

import pytest

from colmena.errors import Unsupported, UnknownError
from colmena.job import (
    JobMonitor,
    LineStyle,
    ProgressKind,
    create_monitor,
    null_job_handle,
)
from colmena.job_model import EventKind, JobState, JobStats, JobType


def _collector():
    messages = []
    return messages, messages.append


@pytest.mark.asyncio
async def test_monitor_event():
    monitor = JobMonitor(finish_delay=0)

    async def body(job):
        job.message("hello world")
        eval_job = job.create_job(JobType.EVALUATE, ["alpha"])

        async def inner(j):
            j.stdout("child stdout")

        await eval_job.run(inner)
        raise Unsupported()

    ret, finished = await asyncio.gather(
        monitor.meta.run(body), monitor.run_until_completion(), return_exceptions=True
    )

    assert isinstance(ret, Unsupported)
    assert finished is monitor
    assert len(monitor.jobs) == 2

    seen = 0
    for event in monitor.events:
        if event.kind is EventKind.MESSAGE:
            assert event.text == "hello world"
            seen += 1
        elif event.kind is EventKind.CHILD_STDOUT:
            assert event.text == "child stdout"
            seen += 1
    assert seen == 2


@pytest.mark.asyncio
async def test_create_monitor_returns_linked_meta():
    monitor, meta = create_monitor()

    async def body(job):
        return 42

    ret, _ = await asyncio.gather(meta.run(body), monitor.run_until_completion())
    assert ret == 42
    assert monitor.jobs[meta.job_id].state is JobState.SUCCEEDED


@pytest.mark.asyncio
async def test_progress_run():
    messages, sink = _collector()
    monitor = JobMonitor(progress=sink, finish_delay=0)
    monitor.set_label_width(7)

    async def body(meta):
        meta.message("Message from meta job")
        eval_job = meta.create_job(
            JobType.EVALUATE, ["alpha", "beta", "gamma", "delta", "epsilon"]
        )

        async def evaluate(job):
            for i in range(3):
                job.message(f"eval: {i}")
                await asyncio.sleep(0)

        build_job = meta.create_job(JobType.BUILD, ["alpha", "beta"])

        async def build(job):
            await asyncio.sleep(0)

        await asyncio.gather(eval_job.run(evaluate), build_job.run(build))
        raise Unsupported()

    ret, _ = await asyncio.gather(
        monitor.meta.run(body), monitor.run_until_completion(), return_exceptions=True
    )

    assert isinstance(ret, Unsupported)
    assert monitor.job_stats() == JobStats(succeeded=2)
    assert str(monitor.job_stats()) == "2 succeeded"
    assert monitor.jobs[monitor.meta_job_id].state is JobState.FAILED

    assert messages[0].kind is ProgressKind.HINT_LABEL_WIDTH
    assert messages[0].width == 7
    assert messages[-1].kind is ProgressKind.COMPLETE

    texts = [m.line.text for m in messages if m.line is not None]
    assert "Message from meta job" in texts
    assert "eval: 2" in texts
    assert "Evaluating alpha, beta, gamma, delta, and epsilon" in texts
    assert "Built alpha and beta" in texts
    assert "This operation is not supported" in texts


@pytest.mark.asyncio
async def test_failure_summary_is_logged(caplog):
    monitor = JobMonitor(finish_delay=0)

    async def body(job):
        job.message("hello world")
        raise Unsupported()

    with caplog.at_level(logging.ERROR, logger="colmena.job"):
        await asyncio.gather(
            monitor.meta.run(body), monitor.run_until_completion(), return_exceptions=True
        )

    assert "Failed to complete requested operation - Last 2 lines of logs:" in caplog.text
    assert " message) hello world" in caplog.text
    assert " failure) This operation is not supported" in caplog.text


@pytest.mark.asyncio
async def test_noop_line_style_and_state():
    messages, sink = _collector()
    monitor = JobMonitor(progress=sink, finish_delay=0)

    async def body(meta):
        job = meta.create_job(JobType.UPLOAD_KEYS, ["alpha"])

        async def work(j):
            j.noop("No keys to upload")

        await job.run_waiting(work)
        return job.job_id

    job_id, _ = await asyncio.gather(monitor.meta.run(body), monitor.run_until_completion())

    assert monitor.jobs[job_id].state is JobState.SUCCEEDED
    noop_lines = [
        m.line for m in messages
        if m.line is not None and m.line.style is LineStyle.SUCCESS_NOOP
    ]
    assert len(noop_lines) == 1
    assert noop_lines[0].text == "No keys to upload"
    assert noop_lines[0].label == "alpha"


@pytest.mark.asyncio
async def test_meta_success_prints_all_done_and_stats_are_noisy():
    messages, sink = _collector()
    monitor = JobMonitor(progress=sink, finish_delay=0)

    async def body(meta):
        job = meta.create_job(JobType.PUSH, ["alpha"])

        async def work(j):
            return "ok"

        return await job.run(work)

    ret, _ = await asyncio.gather(monitor.meta.run(body), monitor.run_until_completion())
    assert ret == "ok"

    meta_lines = [m.line for m in messages if m.kind is ProgressKind.PRINT_META]
    assert any(line.text == "All done!" for line in meta_lines)
    stats_lines = [line for line in meta_lines if line.noisy]
    assert stats_lines[-1].text == "1 succeeded"

    job_lines = [m.line.text for m in messages if m.kind is ProgressKind.PRINT]
    assert job_lines == ["Pushing system closure", "Pushed system closure"]


@pytest.mark.asyncio
async def test_final_state_is_not_overwritten():
    monitor = JobMonitor(finish_delay=0)

    async def body(meta):
        job = meta.create_job(JobType.BUILD, ["alpha"])
        job.state(JobState.RUNNING)
        job.state(JobState.FAILED)
        job.state(JobState.SUCCEEDED)
        return job.job_id

    job_id, _ = await asyncio.gather(monitor.meta.run(body), monitor.run_until_completion())
    assert monitor.jobs[job_id].state is JobState.FAILED


@pytest.mark.asyncio
async def test_job_run_reraises_and_reports_failure():
    monitor = JobMonitor(finish_delay=0)

    async def body(meta):
        job = meta.create_job(JobType.ACTIVATE, ["alpha"])

        async def work(j):
            raise Unsupported()

        with pytest.raises(Unsupported):
            await job.run(work)
        return job.job_id

    job_id, _ = await asyncio.gather(monitor.meta.run(body), monitor.run_until_completion())
    metadata = monitor.jobs[job_id]
    assert metadata.state is JobState.FAILED
    assert metadata.custom_message == "This operation is not supported"


def test_create_meta_job_is_rejected():
    handle = null_job_handle()
    with pytest.raises(UnknownError, match="Cannot create a meta job!"):
        handle.create_job(JobType.META, [])


@pytest.mark.asyncio
async def test_null_handle_runs_without_monitor():
    handle = null_job_handle()
    child = handle.create_job(JobType.EXECUTE, ["alpha"])
    assert child.job_id != handle.job_id

    async def work(j):
        j.stdout("line")
        return 7

    assert await child.run(work) == 7


@pytest.mark.asyncio
async def test_send_after_monitor_finished_raises():
    monitor = JobMonitor(finish_delay=0)
    captured = {}

    async def body(meta):
        captured["handle"] = meta

    await asyncio.gather(monitor.meta.run(body), monitor.run_until_completion())

    with pytest.raises(UnknownError, match="channel closed"):
        captured["handle"].message("too late")
    assert monitor.job_stats() == JobStats()