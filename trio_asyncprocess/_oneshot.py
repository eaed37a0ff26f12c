from typing import Callable, Generic, Optional, TypeVar

import attr
import outcome
import trio

from ._lock import Lock

T = TypeVar("T")


@attr.s(auto_attribs=True)
class _Slot:
    result: Optional[outcome.Outcome] = None
    waiter: Optional[trio.lowlevel.Task] = None
    waited: bool = False


class OneShot(Generic[T]):
    """Carries a single result from any thread to a single Trio task.

    :meth:`resolve` may be called from any thread, exactly once; a second
    call is a bug and raises :exc:`RuntimeError`. :meth:`wait` may be
    called once, from a task in the Trio run that created this object, and
    returns (or raises) the resolved outcome.

    The waiting task is parked with :func:`trio.lowlevel.wait_task_rescheduled`
    and woken with :func:`trio.lowlevel.reschedule`, so it resumes exactly
    once. If the waiter is cancelled, ``on_abort`` is called (once) to
    encourage the resolution along, but the wait itself can't be abandoned:
    the task keeps waiting for :meth:`resolve` and the cancellation is
    delivered at its next checkpoint.
    """

    def __init__(self, on_abort: Optional[Callable[[], None]] = None) -> None:
        self._token = trio.lowlevel.current_trio_token()
        self._on_abort = on_abort
        self._slot = Lock(_Slot())

    @property
    def resolved(self) -> bool:
        return self._slot.with_lock(lambda slot: slot.result is not None)

    def resolve(self, result: outcome.Outcome) -> None:
        def store(slot: _Slot) -> Optional[trio.lowlevel.Task]:
            if slot.result is not None:
                raise RuntimeError("OneShot resolved more than once")
            slot.result = result
            return slot.waiter

        waiter = self._slot.with_lock(store)
        if waiter is not None:
            self._token.run_sync_soon(
                trio.lowlevel.reschedule, waiter, outcome.Value(result)
            )

    async def wait(self) -> T:
        def register(slot: _Slot) -> Optional[outcome.Outcome]:
            if slot.waited:
                raise RuntimeError("only one task may wait on a OneShot")
            slot.waited = True
            if slot.result is None:
                slot.waiter = trio.lowlevel.current_task()
            return slot.result

        early = self._slot.with_lock(register)
        if early is not None:
            await trio.lowlevel.checkpoint()
            return early.unwrap()  # type: ignore

        def abort_fn(raise_cancel: Callable[[], None]) -> trio.lowlevel.Abort:
            if self._on_abort is not None:
                on_abort, self._on_abort = self._on_abort, None
                on_abort()
            return trio.lowlevel.Abort.FAILED

        # resolve() wraps the outcome in another one, since reschedule()
        # unwraps what it's given and we want to look at cancellation first
        result: outcome.Outcome = await trio.lowlevel.wait_task_rescheduled(
            abort_fn
        )
        await trio.lowlevel.checkpoint_if_cancelled()
        return result.unwrap()  # type: ignore
