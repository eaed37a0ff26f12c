import threading
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class LockDeadlockError(RuntimeError):
    """Raised when a thread tries to acquire a :class:`Lock` it already holds."""


class Lock(Generic[T]):
    """A thread-level mutual exclusion lock, optionally guarding some state.

    This is deliberately not a trio lock: it is meant to be shared between
    trio tasks, worker threads that deliver process notifications, and
    signal-delivery callbacks, none of which can be relied upon to be able
    to ``await``. Critical sections must therefore be short and must never
    contain a checkpoint.

    The lock is not reentrant. Like an error-checking mutex, it remembers
    which thread owns it, and an attempt by the owner to acquire it again
    raises :exc:`LockDeadlockError` rather than hanging forever.

    Args:
      state: The object guarded by this lock. It is passed to the bodies
          given to :meth:`with_lock` and returned by ``with lock as state``.

    """

    def __init__(self, state: T = None) -> None:  # type: ignore
        self._state = state
        self._lock = threading.Lock()
        self._owner: Optional[int] = None

    def __repr__(self) -> str:
        status = "locked" if self._lock.locked() else "unlocked"
        return f"<Lock {status} guarding {self._state!r}>"

    def _check_not_owner(self) -> None:
        if self.owned():
            raise LockDeadlockError(
                "attempted to acquire a Lock already held by the current thread"
            )

    def acquire(self) -> None:
        """Block the calling thread until the lock is held."""
        self._check_not_owner()
        self._lock.acquire()
        self._owner = threading.get_ident()

    def try_acquire(self) -> bool:
        """Acquire the lock if that can be done without blocking.

        A thread that already owns the lock gets False, same as any other
        thread, since a non-blocking attempt can't deadlock.

        Returns:
          bool: True if the lock is now held by the caller.

        """
        if not self._lock.acquire(blocking=False):
            return False
        self._owner = threading.get_ident()
        return True

    def release(self) -> None:
        if self._owner != threading.get_ident():
            raise RuntimeError("can't release a Lock held by another thread")
        self._owner = None
        self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()

    def owned(self) -> bool:
        """Return True if the calling thread holds the lock."""
        return self._owner == threading.get_ident()

    def with_lock(self, body: Callable[..., R], *args: Any) -> R:
        """Call ``body(state, *args)`` with the lock held and return its result.

        The lock is released on every exit path, including when ``body``
        raises.
        """
        self.acquire()
        try:
            return body(self._state, *args)
        finally:
            self.release()

    def with_lock_if_available(
        self, body: Callable[..., R], *args: Any
    ) -> Optional[R]:
        """Like :meth:`with_lock`, but return None without calling ``body``
        if the lock is currently held by anyone."""
        if not self.try_acquire():
            return None
        try:
            return body(self._state, *args)
        finally:
            self.release()

    def __enter__(self) -> T:
        self.acquire()
        return self._state

    def __exit__(self, *exc: object) -> None:
        self.release()
