import collections
import logging
import signal
import threading
from typing import Any, Callable, Deque, Dict, FrozenSet, Iterable, Optional, Union

import attr
import trio

from ._lock import Lock

logger = logging.getLogger(__name__)

SignalHandler = Callable[[signal.Signals], None]

# SIGKILL and SIGSTOP are missing on purpose: they can't be caught.
# EMT and INFO only exist on the BSDs and macOS.
_CATCHABLE_SIGNAL_NAMES = (
    "SIGHUP SIGINT SIGQUIT SIGILL SIGTRAP SIGABRT SIGIOT SIGEMT SIGFPE SIGBUS "
    "SIGSEGV SIGSYS SIGPIPE SIGALRM SIGTERM SIGURG SIGTSTP SIGCONT SIGCHLD "
    "SIGTTIN SIGTTOU SIGIO SIGXCPU SIGXFSZ SIGVTALRM SIGPROF SIGWINCH SIGINFO"
).split()


def _known_signals() -> FrozenSet[signal.Signals]:
    valid = signal.valid_signals()
    known = set()
    for name in _CATCHABLE_SIGNAL_NAMES:
        sig = getattr(signal, name, None)
        if sig is not None and sig in valid:
            known.add(signal.Signals(sig))
    return frozenset(known)


#: The signals that can be intercepted on this host.
KNOWN_SIGNALS = _known_signals()


def _current_trio_token() -> Optional[trio.lowlevel.TrioToken]:
    try:
        return trio.lowlevel.current_trio_token()
    except RuntimeError:
        return None


@attr.s(auto_attribs=True)
class _Registration:
    active: bool = False
    suspended: bool = False
    cancelled: bool = False
    previous: Dict[signal.Signals, Any] = attr.Factory(dict)


class SignalInterceptor:
    """Intercepts a set of signals directed at this process while active.

    While active, each signal in :attr:`signals` is handled by calling
    ``handler`` with the :class:`signal.Signals` that arrived, instead of
    by whatever disposition the signal had before. Cancelling the
    interceptor restores those prior dispositions.

    Python runs signal handlers on the main thread, between bytecodes, so
    the real work is handed off: when ``trio_token`` is available the
    handler is invoked from the Trio run loop via
    :meth:`~trio.lowlevel.TrioToken.run_sync_soon`, which is safe to call
    from a signal handler. Without a token it is invoked inline.

    All registration changes (:meth:`activate`, :meth:`suspend`,
    :meth:`resume`, :meth:`cancel`) are serialized. Each accepts
    ``asynchronous``: if false, the call blocks until the change has been
    applied; if true, it is scheduled on the Trio run loop and the call
    returns immediately. Since dispositions can only be changed from the
    main thread, a synchronous request from another thread is forwarded to
    the run loop with :func:`trio.from_thread.run_sync`.

    Signals that arrive while the interceptor is suspended are held back,
    each at most once, and delivered when it is resumed. Without a token, a
    signal that interrupts this thread while it holds the interceptor's lock
    is held the same way and delivered by the next registration change or
    property read.
    Held signals are discarded by :meth:`cancel`.

    Args:
      signals: The signals to intercept. Anything not in
          :data:`KNOWN_SIGNALS` is ignored; if nothing is left,
          :exc:`ValueError` is raised.
      handler: Called with each intercepted signal.
      trio_token: The run loop that should receive deliveries and
          asynchronous requests. Defaults to the current one, if any.

    """

    def __init__(
        self,
        signals: Iterable[Union[signal.Signals, int]],
        handler: SignalHandler,
        *,
        trio_token: Optional[trio.lowlevel.TrioToken] = None,
    ) -> None:
        effective = frozenset(signal.Signals(sig) for sig in signals) & KNOWN_SIGNALS
        if not effective:
            raise ValueError("must provide a non-empty set of signals to intercept")
        self._signals = effective
        self._handler = handler
        self._trio_token = trio_token or _current_trio_token()
        self._registration = Lock(_Registration())
        # Appended to without the lock (deque.append is atomic), popped
        # with it held.
        self._pending: Deque[signal.Signals] = collections.deque()
        # Only guards the compare-and-swap of the cancel claim, so that
        # racing cancel() calls agree on a single winner.
        self._cancel_lock = Lock()
        self._cancel_claimed = False

    def __repr__(self) -> str:
        names = ", ".join(sorted(sig.name for sig in self._signals))
        return f"<SignalInterceptor for {names}>"

    @property
    def signals(self) -> FrozenSet[signal.Signals]:
        return self._signals

    @property
    def active(self) -> bool:
        return self._read(lambda reg: reg.active)

    @property
    def suspended(self) -> bool:
        return self._read(lambda reg: reg.suspended)

    @property
    def cancelled(self) -> bool:
        return self._read(lambda reg: reg.cancelled)

    def _read(self, field: Callable[[_Registration], bool]) -> bool:
        value = self._registration.with_lock(field)
        # A signal may have landed while we held the lock
        self._flush_pending()
        return value

    def activate(self, asynchronous: bool = False) -> None:
        self._perform(self._activate, asynchronous)

    def suspend(self, asynchronous: bool = False) -> None:
        self._perform(self._set_suspended, asynchronous, True)

    def resume(self, asynchronous: bool = False) -> None:
        self._perform(self._set_suspended, asynchronous, False)

    def cancel(self, asynchronous: bool = False) -> None:
        """Stop intercepting and restore the prior signal dispositions.

        Safe to call any number of times from any number of threads; only
        the first call has an effect.
        """
        if not self._claim_cancel():
            return
        self._perform(self._cancel, asynchronous)

    def __enter__(self) -> "SignalInterceptor":
        self.activate()
        return self

    def __exit__(self, *exc: object) -> None:
        self.cancel()

    def _claim_cancel(self) -> bool:
        with self._cancel_lock:
            if self._cancel_claimed:
                return False
            self._cancel_claimed = True
            return True

    def _perform(
        self, work: Callable[..., None], asynchronous: bool, *args: Any
    ) -> None:
        token = self._trio_token
        if asynchronous and token is not None:
            token.run_sync_soon(self._locked, work, *args)
        elif token is None or threading.current_thread() is threading.main_thread():
            self._locked(work, *args)
        else:
            trio.from_thread.run_sync(self._locked, work, *args, trio_token=token)

    def _locked(self, work: Callable[..., None], *args: Any) -> None:
        self._registration.with_lock(work, *args)
        self._flush_pending()

    def _activate(self, reg: _Registration) -> None:
        if reg.active or reg.cancelled:
            return
        for sig in self._signals:
            reg.previous[sig] = signal.signal(sig, self._on_os_signal)
        reg.active = True
        logger.debug("%r activated", self)

    def _set_suspended(self, reg: _Registration, suspended: bool) -> None:
        reg.suspended = suspended

    def _cancel(self, reg: _Registration) -> None:
        reg.cancelled = True
        self._pending.clear()
        if not reg.active:
            return
        for sig, previous in reg.previous.items():
            # getsignal() reports None for handlers not installed from Python
            signal.signal(sig, signal.SIG_DFL if previous is None else previous)
        reg.active = False
        logger.debug("%r cancelled, prior dispositions restored", self)

    def _on_os_signal(self, signum: int, frame: Any) -> None:
        sig = signal.Signals(signum)
        if self._trio_token is not None:
            self._trio_token.run_sync_soon(self._deliver, sig)
        else:
            self._deliver(sig)

    def _deliver(self, sig: signal.Signals) -> None:
        if self._registration.owned():
            # Called inline from the OS-level handler while this thread is
            # in the middle of a registration change; that change delivers
            # the signal once it's done.
            self._pending.append(sig)
            return

        def admit(reg: _Registration) -> bool:
            if reg.cancelled:
                return False
            if reg.suspended:
                if sig not in self._pending:
                    self._pending.append(sig)
                return False
            return True

        if self._registration.with_lock(admit):
            logger.debug("%r delivering %s", self, sig.name)
            self._handler(sig)

    def _flush_pending(self) -> None:
        def take(reg: _Registration) -> Optional[signal.Signals]:
            if reg.cancelled or reg.suspended or not self._pending:
                return None
            return self._pending.popleft()

        while True:
            sig = self._registration.with_lock(take)
            if sig is None:
                return
            logger.debug("%r delivering held %s", self, sig.name)
            self._handler(sig)
