"""Tests for debounced pass scheduling."""

import asyncio

import pytest

from refcounter.scheduler import UpdateScheduler


class Recorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, file_id):
        self.calls.append(file_id)


@pytest.mark.asyncio
async def test_burst_of_edits_runs_one_pass():
    recorder = Recorder()
    scheduler = UpdateScheduler(recorder, delay=0.01)

    scheduler.schedule("editor-1", "a.py")
    scheduler.schedule("editor-1", "a.py")
    task = scheduler.schedule("editor-1", "a.py")
    await task

    assert recorder.calls == ["a.py"]
    assert not scheduler.is_pending("editor-1")


@pytest.mark.asyncio
async def test_editors_are_independent():
    recorder = Recorder()
    scheduler = UpdateScheduler(recorder, delay=0.01)

    first = scheduler.schedule("editor-1", "a.py")
    second = scheduler.schedule("editor-2", "b.py")
    await asyncio.gather(first, second)

    assert sorted(recorder.calls) == ["a.py", "b.py"]


@pytest.mark.asyncio
async def test_schedule_immediate_cancels_pending():
    recorder = Recorder()
    scheduler = UpdateScheduler(recorder, delay=10)

    pending = scheduler.schedule("editor-1", "a.py")
    await scheduler.schedule_immediate("editor-1", "b.py")

    assert recorder.calls == ["b.py"]
    await asyncio.sleep(0)
    assert pending.cancelled()


@pytest.mark.asyncio
async def test_cancel_all():
    recorder = Recorder()
    scheduler = UpdateScheduler(recorder, delay=10)
    scheduler.schedule("editor-1", "a.py")
    scheduler.schedule("editor-2", "b.py")

    scheduler.cancel_all()
    await asyncio.sleep(0)

    assert not scheduler.is_pending("editor-1")
    assert not scheduler.is_pending("editor-2")
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_cancel_without_pending_pass():
    scheduler = UpdateScheduler(Recorder())

    assert scheduler.cancel("editor-1") is False
