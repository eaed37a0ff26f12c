import outcome
import pytest
import trio
import trio.testing

from trio_asyncprocess import OneShot


class TestOneShot:
    @pytest.mark.trio
    async def test_resolved_before_wait(self):
        shot = OneShot()
        shot.resolve(outcome.Value(42))
        assert shot.resolved
        assert await shot.wait() == 42

    @pytest.mark.trio
    async def test_resolved_from_another_thread(self):
        shot = OneShot()
        results = []

        async def waiter():
            results.append(await shot.wait())

        async with trio.open_nursery() as nursery:
            nursery.start_soon(waiter)
            await trio.testing.wait_all_tasks_blocked()
            await trio.to_thread.run_sync(shot.resolve, outcome.Value("done"))

        assert results == ["done"]

    @pytest.mark.trio
    async def test_error_is_raised(self):
        shot = OneShot()
        shot.resolve(outcome.Error(KeyError("missing")))
        with pytest.raises(KeyError):
            await shot.wait()

    @pytest.mark.trio
    async def test_second_resolution_is_a_bug(self):
        shot = OneShot()
        shot.resolve(outcome.Value(1))
        with pytest.raises(RuntimeError):
            shot.resolve(outcome.Value(2))
        assert await shot.wait() == 1

    @pytest.mark.trio
    async def test_single_waiter(self):
        shot = OneShot()
        shot.resolve(outcome.Value(None))
        await shot.wait()
        with pytest.raises(RuntimeError):
            await shot.wait()

    @pytest.mark.trio
    async def test_cancelled_waiter_waits_for_resolution(self):
        aborts = []

        def on_abort():
            aborts.append("abort")
            shot.resolve(outcome.Value("late"))

        shot = OneShot(on_abort=on_abort)
        with trio.move_on_after(0.05) as scope:
            await shot.wait()
        assert scope.cancelled_caught
        assert aborts == ["abort"]
        assert shot.resolved
