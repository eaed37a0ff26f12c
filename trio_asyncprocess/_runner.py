import enum
import logging
import os
import signal
import subprocess
import threading
from typing import Any, FrozenSet, List, Mapping, Optional, Union

import attr
import outcome
import trio

from ._errors import (
    ProcessError,
    ProcessFinishedError,
    ProcessIsRunningError,
    ProcessTerminatedError,
    UncaughtSignalError,
)
from ._lock import Lock
from ._oneshot import OneShot
from ._signals import SignalInterceptor
from ._streams import ByteStream, Pipe

logger = logging.getLogger(__name__)

#: Signals forwarded to the child when this program receives them.
DEFAULT_INTERCEPTED_SIGNALS: FrozenSet[signal.Signals] = frozenset(
    {signal.SIGINT, signal.SIGTERM}
)

Binding = Union[None, int, Pipe, ByteStream, Any]


class Phase(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class TerminationReason(enum.Enum):
    EXIT = "exit"
    UNCAUGHT_SIGNAL = "uncaught signal"


@attr.s(auto_attribs=True)
class LifecycleState:
    phase: Phase = Phase.IDLE
    exit_code: Optional[int] = None
    termination_reason: Optional[TerminationReason] = None
    caught_signal: Optional[signal.Signals] = None


@attr.s(auto_attribs=True, frozen=True)
class LaunchRequest:
    """Everything :class:`ProcessRunner` needs to start a child."""

    executable: str
    arguments: List[str] = attr.Factory(list)
    environment: Optional[Mapping[str, str]] = None
    cwd: Optional[str] = None
    niceness: int = 0
    stdin: Binding = None
    stdout: Binding = None
    stderr: Binding = None
    intercepted_signals: FrozenSet[signal.Signals] = DEFAULT_INTERCEPTED_SIGNALS
    shutdown_signal: signal.Signals = signal.SIGTERM
    shutdown_timeout: float = 5


def _child_side(binding: Binding, *, output: bool) -> Any:
    """Translate a stream binding into something Popen understands."""
    if binding is None:
        return None
    if isinstance(binding, ByteStream):
        binding = binding.pipe
    if isinstance(binding, Pipe):
        fd = binding.write_fd if output else binding.read_fd
        if fd is None:
            raise ValueError(f"{binding!r} has already been closed")
        return fd
    return binding


def _close_child_side(binding: Binding, *, output: bool) -> None:
    if isinstance(binding, ByteStream):
        binding = binding.pipe
    if isinstance(binding, Pipe):
        if output:
            binding.close_write()
        else:
            binding.close_read()


def _release_child_sides(request: LaunchRequest) -> None:
    _close_child_side(request.stdin, output=False)
    _close_child_side(request.stdout, output=True)
    _close_child_side(request.stderr, output=True)


class ProcessRunner:
    """Drives one child process from launch to exit.

    A runner can :meth:`run` once. The exit status is collected by a
    worker thread (started with :func:`trio.lowlevel.start_thread_soon`)
    blocking in :meth:`subprocess.Popen.wait`; when it returns, that thread
    records the outcome and wakes the task sitting in :meth:`run` through a
    :class:`OneShot`. All lifecycle state lives behind a :class:`Lock`,
    since it's written from that thread and read from anywhere.
    """

    def __init__(self) -> None:
        self._state = Lock(LifecycleState())
        self._proc: Optional["subprocess.Popen[bytes]"] = None
        self._interceptor: Optional[SignalInterceptor] = None
        self._kill_timer: Optional[threading.Timer] = None

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    @property
    def running(self) -> bool:
        return self._state.with_lock(lambda state: state.phase is Phase.RUNNING)

    @property
    def completed(self) -> bool:
        return self._state.with_lock(lambda state: state.phase is Phase.COMPLETED)

    @property
    def exit_code(self) -> Optional[int]:
        return self._state.with_lock(lambda state: state.exit_code)

    @property
    def termination_reason(self) -> Optional[TerminationReason]:
        return self._state.with_lock(lambda state: state.termination_reason)

    @property
    def caught_signal(self) -> Optional[signal.Signals]:
        return self._state.with_lock(lambda state: state.caught_signal)

    def check_idle(self) -> None:
        """Raise unless :meth:`run` has never been called."""
        phase = self._state.with_lock(lambda state: state.phase)
        if phase is Phase.RUNNING:
            raise ProcessIsRunningError()
        if phase is Phase.COMPLETED:
            raise ProcessFinishedError()

    async def run(self, request: LaunchRequest) -> None:
        """Launch the child and wait for it to exit.

        Raises:
          ProcessIsRunningError: if this runner's child is already running.
          ProcessFinishedError: if this runner has already been used.
          ProcessError: if the child couldn't be launched.
          UncaughtSignalError: if one of ``request.intercepted_signals`` was
              received, and forwarded to the child, while it ran.
          ProcessTerminatedError: if the child exited with a nonzero status.

        """

        def begin(state: LifecycleState) -> None:
            if state.phase is Phase.RUNNING:
                raise ProcessIsRunningError()
            if state.phase is Phase.COMPLETED:
                raise ProcessFinishedError()
            state.phase = Phase.RUNNING

        self._state.with_lock(begin)

        completion: OneShot[None] = OneShot(
            on_abort=lambda: self._shut_down(request)
        )
        try:
            self._interceptor = self._make_interceptor(request)
            if self._interceptor is not None:
                self._interceptor.activate()
            self._proc = self._spawn(request)
        except Exception as exc:
            # Popen raises TypeError for bad argument or environment types,
            # OSError for a missing executable, and so on
            if self._interceptor is not None:
                self._interceptor.cancel()
            _release_child_sides(request)

            def fail(state: LifecycleState) -> None:
                state.phase = Phase.COMPLETED

            self._state.with_lock(fail)
            logger.debug("failed to launch %s: %r", request.executable, exc)
            raise ProcessError(exc) from exc

        logger.debug(
            "launched pid=%d: %s %r",
            self._proc.pid,
            request.executable,
            request.arguments,
        )
        if request.niceness > 0:
            self._renice(request.niceness)

        proc = self._proc
        trio.lowlevel.start_thread_soon(
            proc.wait,
            lambda result: self._on_termination(proc, result, completion),
        )
        await completion.wait()

    def _make_interceptor(
        self, request: LaunchRequest
    ) -> Optional[SignalInterceptor]:
        if not request.intercepted_signals:
            return None
        if threading.current_thread() is not threading.main_thread():
            logger.warning(
                "not running on the main thread; signals won't be forwarded to "
                "%s",
                request.executable,
            )
            return None
        return SignalInterceptor(request.intercepted_signals, self._on_signal)

    def _spawn(self, request: LaunchRequest) -> "subprocess.Popen[bytes]":
        try:
            return subprocess.Popen(
                [request.executable, *request.arguments],
                executable=request.executable,
                stdin=_child_side(request.stdin, output=False),
                stdout=_child_side(request.stdout, output=True),
                stderr=_child_side(request.stderr, output=True),
                cwd=request.cwd,
                env=dict(request.environment)
                if request.environment is not None
                else None,
            )
        finally:
            # Whether or not the launch worked, our copies of the child's
            # ends have to go, or readers would never see end-of-file.
            _release_child_sides(request)

    def _renice(self, niceness: int) -> None:
        assert self._proc is not None
        try:
            os.setpriority(os.PRIO_PROCESS, self._proc.pid, niceness)
        except (AttributeError, OSError) as exc:
            logger.warning(
                "couldn't set niceness %d for pid=%d: %r", niceness, self._proc.pid, exc
            )

    def _on_signal(self, sig: signal.Signals) -> None:
        def record(state: LifecycleState) -> bool:
            if state.phase is not Phase.RUNNING:
                return False
            state.caught_signal = sig
            return True

        proc = self._proc
        if not self._state.with_lock(record) or proc is None:
            return
        logger.debug("forwarding %s to pid=%d", sig.name, proc.pid)
        try:
            # Some programs only listen for SIGTERM, so an interrupt gets
            # both.
            if sig == signal.SIGINT:
                proc.send_signal(signal.SIGINT)
            proc.terminate()
        except ProcessLookupError:
            pass

    def _shut_down(self, request: LaunchRequest) -> None:
        """Called when the task waiting in run() is cancelled."""
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return
        logger.debug(
            "run() cancelled; sending %s to pid=%d",
            request.shutdown_signal.name,
            proc.pid,
        )
        try:
            proc.send_signal(request.shutdown_signal)
        except ProcessLookupError:
            return
        if request.shutdown_timeout > 0:
            self._kill_timer = threading.Timer(request.shutdown_timeout, self._kill)
            self._kill_timer.daemon = True
            self._kill_timer.start()
        else:
            self._kill()

    def _kill(self) -> None:
        proc = self._proc
        if proc is not None and proc.returncode is None:
            logger.debug("pid=%d ignored shutdown request; killing it", proc.pid)
            try:
                proc.kill()
            except ProcessLookupError:
                pass

    def _on_termination(
        self,
        proc: "subprocess.Popen[bytes]",
        result: outcome.Outcome,
        completion: OneShot[None],
    ) -> None:
        # Runs in the worker thread that waited for the child. Must not block.
        if self._kill_timer is not None:
            self._kill_timer.cancel()
        if self._interceptor is not None:
            self._interceptor.cancel(asynchronous=True)

        if isinstance(result, outcome.Error):
            def abandon(state: LifecycleState) -> None:
                state.phase = Phase.COMPLETED

            self._state.with_lock(abandon)
            completion.resolve(outcome.Error(ProcessError(result.error)))
            return

        returncode: int = result.unwrap()

        def finish(state: LifecycleState) -> Optional[signal.Signals]:
            state.exit_code = returncode
            state.termination_reason = (
                TerminationReason.UNCAUGHT_SIGNAL
                if returncode < 0
                else TerminationReason.EXIT
            )
            state.phase = Phase.COMPLETED
            return state.caught_signal

        caught_signal = self._state.with_lock(finish)
        logger.debug("pid=%d exited with %d", proc.pid, returncode)

        if caught_signal is not None:
            completion.resolve(outcome.Error(UncaughtSignalError(caught_signal)))
        elif returncode != 0:
            completion.resolve(outcome.Error(ProcessTerminatedError(returncode)))
        else:
            completion.resolve(outcome.Value(None))
