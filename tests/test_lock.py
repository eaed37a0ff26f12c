import threading

import pytest

from trio_asyncprocess import Lock, LockDeadlockError


class TestLock:
    def test_with_lock_passes_state_and_returns_result(self):
        lock = Lock([1, 2])
        assert lock.with_lock(lambda state, extra: state + [extra], 3) == [1, 2, 3]
        assert not lock.locked()

    def test_with_lock_releases_when_body_raises(self):
        lock = Lock()

        def body(state):
            raise KeyError("boom")

        with pytest.raises(KeyError):
            lock.with_lock(body)
        assert not lock.locked()
        assert lock.try_acquire()
        lock.release()

    def test_reacquiring_from_the_owner_is_detected(self):
        lock = Lock({})
        with lock:
            with pytest.raises(LockDeadlockError):
                lock.acquire()
            with pytest.raises(LockDeadlockError):
                lock.with_lock(lambda state: None)
            # a non-blocking attempt just fails
            assert not lock.try_acquire()
        assert not lock.locked()

    def test_context_manager_yields_state(self):
        state = {"count": 0}
        lock = Lock(state)
        with lock as guarded:
            guarded["count"] += 1
            assert lock.owned()
        assert state["count"] == 1
        assert not lock.owned()

    def test_with_lock_if_available(self):
        lock = Lock(5)
        assert lock.with_lock_if_available(lambda state: state * 2) == 10

        held = threading.Event()
        done = threading.Event()

        def holder():
            with lock:
                held.set()
                done.wait()

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            held.wait()
            called = []
            assert lock.with_lock_if_available(called.append) is None
            assert called == []
            assert not lock.try_acquire()
            assert not lock.owned()
            with pytest.raises(RuntimeError):
                lock.release()
        finally:
            done.set()
            thread.join()
        assert lock.with_lock_if_available(lambda state: state) == 5

    def test_serializes_threads(self):
        lock = Lock({"count": 0})

        def bump(state):
            value = state["count"]
            state["count"] = value + 1

        def worker():
            for _ in range(1000):
                lock.with_lock(bump)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert lock.with_lock(lambda state: state["count"]) == 8000
