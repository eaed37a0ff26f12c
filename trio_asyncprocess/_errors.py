import signal
from typing import Union

import attr


class AsyncProcessError(Exception):
    """Base class for every error raised by :class:`AsyncProcess` and
    :func:`run_process`."""


@attr.s(auto_attribs=True, auto_exc=True, str=False)
class ProcessIsRunningError(AsyncProcessError):
    def __str__(self) -> str:
        return "the process is already running"


@attr.s(auto_attribs=True, auto_exc=True, str=False)
class ProcessFinishedError(AsyncProcessError):
    def __str__(self) -> str:
        return "the process has already run to completion; processes are single-use"


@attr.s(auto_attribs=True, auto_exc=True, str=False)
class ProcessTerminatedError(AsyncProcessError):
    """The child exited with a nonzero status.

    A negative ``code`` means the child was killed by signal ``-code``,
    following the :attr:`subprocess.Popen.returncode` convention.
    """

    code: int

    def __str__(self) -> str:
        if self.code < 0:
            try:
                name = signal.Signals(-self.code).name
            except ValueError:
                name = f"signal {-self.code}"
            return f"process died with {name}"
        return f"process exited with status {self.code}"


@attr.s(auto_attribs=True, auto_exc=True, str=False)
class UncaughtSignalError(AsyncProcessError):
    """This program received ``signal`` while the child was running, and
    forwarded it to the child."""

    signal: Union[signal.Signals, int]

    def __str__(self) -> str:
        name = getattr(self.signal, "name", str(self.signal))
        return f"interrupted by {name}"


@attr.s(auto_attribs=True, auto_exc=True, str=False)
class ProcessError(AsyncProcessError):
    """Wraps a failure to launch or manage the child, such as the executable
    not existing."""

    underlying: BaseException

    def __str__(self) -> str:
        return f"{type(self.underlying).__name__}: {self.underlying}"


@attr.s(auto_attribs=True, auto_exc=True, str=False)
class ProcessErrorWithOutput(AsyncProcessError):
    """Annotates ``error`` with the diagnostic ``output`` the child produced.

    Use :meth:`wrap` rather than the constructor; it keeps the annotation
    one level deep.
    """

    error: AsyncProcessError
    output: str

    @classmethod
    def wrap(cls, error: BaseException, output: str) -> "ProcessErrorWithOutput":
        if isinstance(error, ProcessErrorWithOutput):
            error = error.error
        elif not isinstance(error, AsyncProcessError):
            error = ProcessError(error)
        return cls(error, output)

    def __str__(self) -> str:
        return f"{self.error}\n{self.output}"
