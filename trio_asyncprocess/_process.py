import enum
import os
import signal
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

import attr

from ._executable import Executable
from ._lock import Lock
from ._runner import (
    DEFAULT_INTERCEPTED_SIGNALS,
    Binding,
    LaunchRequest,
    ProcessRunner,
    TerminationReason,
)
from ._signals import KNOWN_SIGNALS


class Priority(enum.Enum):
    """How much CPU the child should get, relative to this process.

    :attr:`niceness` is the increment applied to the child after it
    starts. Only lowering the priority is attempted; raising it needs
    privileges.
    """

    USER_INTERACTIVE = "user-interactive"
    USER_INITIATED = "user-initiated"
    DEFAULT = "default"
    UTILITY = "utility"
    BACKGROUND = "background"

    @property
    def niceness(self) -> int:
        return _NICENESS[self]


_NICENESS = {
    Priority.USER_INTERACTIVE: 0,
    Priority.USER_INITIATED: 0,
    Priority.DEFAULT: 0,
    Priority.UTILITY: 5,
    Priority.BACKGROUND: 10,
}


@attr.s(auto_attribs=True)
class _Config:
    executable: Executable
    arguments: List[str] = attr.Factory(list)
    environment: Optional[Dict[str, str]] = None
    cwd: Optional[str] = None
    priority: Priority = Priority.DEFAULT
    stdin: Binding = None
    stdout: Binding = None
    stderr: Binding = None
    intercepted_signals: FrozenSet[signal.Signals] = DEFAULT_INTERCEPTED_SIGNALS
    shutdown_signal: signal.Signals = signal.SIGTERM
    shutdown_timeout: float = 5


def _setting(name: str, doc: str) -> property:
    def get(self: "AsyncProcess") -> Any:
        return self._config.with_lock(lambda config: getattr(config, name))

    def set(self: "AsyncProcess", value: Any) -> None:
        self._runner.check_idle()
        self._config.with_lock(lambda config: setattr(config, name, value))

    return property(get, set, doc=doc)


class AsyncProcess:
    """A child process that can be configured, then run once.

    Configure the process by assigning to its attributes, then ``await``
    :meth:`run`::

        process = AsyncProcess(Executable.bin("/usr/bin/env"))
        process.arguments = ["printenv", "HOME"]
        process.stdout = ByteStream()
        async with trio.open_nursery() as nursery:
            nursery.start_soon(process.run)
            async for chunk in process.stdout:
                ...

    Configuration can't change once :meth:`run` has been called; trying to
    raises :exc:`ProcessIsRunningError` or :exc:`ProcessFinishedError`.

    Standard streams left as None are inherited from this process. Inputs
    may be bound to a :class:`Pipe` (we keep the write end), a file
    descriptor, or a file object; outputs additionally accept a
    :class:`ByteStream`.

    While the child runs, any of :attr:`intercepted_signals` received by
    this process is forwarded to the child instead of being handled here:
    SIGINT is passed along and followed by a SIGTERM, anything else becomes
    a SIGTERM. :meth:`run` then raises :exc:`UncaughtSignalError`.
    """

    executable = _setting("executable", "The :class:`Executable` to run.")
    cwd = _setting(
        "cwd", "The child's working directory, or None to inherit ours."
    )
    priority = _setting("priority", "The child's :class:`Priority`.")
    stdin = _setting("stdin", "Where the child's standard input comes from.")
    stdout = _setting("stdout", "Where the child's standard output goes.")
    stderr = _setting("stderr", "Where the child's standard error goes.")
    shutdown_signal = _setting(
        "shutdown_signal", "Sent to the child if :meth:`run` is cancelled."
    )
    shutdown_timeout = _setting(
        "shutdown_timeout",
        "Seconds to wait after :attr:`shutdown_signal` before killing the child.",
    )

    def __init__(self, executable: Optional[Executable] = None) -> None:
        self._config = Lock(_Config(executable or Executable.default()))
        self._runner = ProcessRunner()

    def __repr__(self) -> str:
        return (
            f"<AsyncProcess {self.executable.path!r} {self.arguments!r} "
            f"pid={self.pid}>"
        )

    @property
    def arguments(self) -> List[str]:
        return self._config.with_lock(lambda config: list(config.arguments))

    @arguments.setter
    def arguments(self, arguments: Iterable[str]) -> None:
        self._runner.check_idle()
        arguments = [os.fspath(arg) for arg in arguments]
        self._config.with_lock(lambda config: setattr(config, "arguments", arguments))

    @property
    def environment(self) -> Dict[str, str]:
        """The child's environment variables.

        Reads as an empty dict until assigned; an unassigned environment
        means the child inherits ours.
        """
        return self._config.with_lock(lambda config: dict(config.environment or {}))

    @environment.setter
    def environment(self, environment: Optional[Dict[str, str]]) -> None:
        self._runner.check_idle()
        environment = dict(environment) if environment is not None else None
        self._config.with_lock(
            lambda config: setattr(config, "environment", environment)
        )

    @property
    def intercepted_signals(self) -> FrozenSet[signal.Signals]:
        return self._config.with_lock(lambda config: config.intercepted_signals)

    @intercepted_signals.setter
    def intercepted_signals(
        self, signals: Iterable[Union[signal.Signals, int]]
    ) -> None:
        self._runner.check_idle()
        requested = frozenset(signal.Signals(sig) for sig in signals)
        effective = requested & KNOWN_SIGNALS
        if requested and not effective:
            raise ValueError(f"none of {requested!r} can be intercepted on this host")
        self._config.with_lock(
            lambda config: setattr(config, "intercepted_signals", effective)
        )

    @property
    def pid(self) -> Optional[int]:
        return self._runner.pid

    @property
    def running(self) -> bool:
        return self._runner.running

    @property
    def exit_code(self) -> Optional[int]:
        return self._runner.exit_code

    @property
    def termination_reason(self) -> Optional[TerminationReason]:
        return self._runner.termination_reason

    def _launch_request(self, config: _Config) -> LaunchRequest:
        return LaunchRequest(
            executable=config.executable.path,
            arguments=list(config.arguments),
            environment=config.environment,
            cwd=os.fspath(config.cwd) if config.cwd is not None else None,
            niceness=config.priority.niceness,
            stdin=config.stdin,
            stdout=config.stdout,
            stderr=config.stderr,
            intercepted_signals=config.intercepted_signals,
            shutdown_signal=signal.Signals(config.shutdown_signal),
            shutdown_timeout=config.shutdown_timeout,
        )

    async def run(self) -> None:
        """Run the process to completion.

        Raises:
          ProcessIsRunningError: if the process is already running.
          ProcessFinishedError: if the process has already been run.
          ProcessError: if the process couldn't be launched.
          UncaughtSignalError: if this program received one of
              :attr:`intercepted_signals` while the process was running.
          ProcessTerminatedError: if the process exited with a nonzero
              status.

        """
        request = self._config.with_lock(self._launch_request)
        await self._runner.run(request)
