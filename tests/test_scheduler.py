import asyncio

from booking_service.scheduler import DeferredTasks


async def test_callback_runs_after_delay():
    tasks = DeferredTasks()
    fired = asyncio.Event()

    async def callback():
        fired.set()

    tasks.schedule("a", 0.01, callback)
    assert tasks.pending() == ["a"]
    await asyncio.wait_for(fired.wait(), timeout=1)
    await asyncio.sleep(0)
    assert tasks.pending() == []


async def test_cancel_before_firing():
    tasks = DeferredTasks()
    calls = []

    async def callback():
        calls.append(1)

    tasks.schedule("a", 0.05, callback)
    assert tasks.cancel("a") is True
    assert tasks.cancel("a") is False
    await asyncio.sleep(0.1)
    assert calls == []


async def test_rescheduling_replaces_previous():
    tasks = DeferredTasks()
    calls = []

    async def first():
        calls.append("first")

    async def second():
        calls.append("second")

    tasks.schedule("a", 0.02, first)
    tasks.schedule("a", 0.02, second)
    await asyncio.sleep(0.1)
    assert calls == ["second"]


async def test_failing_callback_is_logged(caplog):
    tasks = DeferredTasks()

    async def boom():
        raise RuntimeError("boom")

    tasks.schedule("a", 0, boom)
    await asyncio.sleep(0.05)
    assert tasks.pending() == []
    assert "deferred task a failed" in caplog.text


async def test_shutdown_cancels_everything():
    tasks = DeferredTasks()

    async def never():
        raise AssertionError("should not run")

    tasks.schedule("a", 10, never)
    tasks.schedule("b", 10, never)
    await tasks.shutdown()
    assert tasks.pending() == []
