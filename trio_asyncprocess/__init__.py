"""Run child processes from Trio, with streamed output, captured diagnostics
and signal forwarding."""

from ._version import __version__
from ._errors import (
    AsyncProcessError,
    ProcessError,
    ProcessErrorWithOutput,
    ProcessFinishedError,
    ProcessIsRunningError,
    ProcessTerminatedError,
    UncaughtSignalError,
)
from ._lock import Lock, LockDeadlockError
from ._signals import KNOWN_SIGNALS, SignalInterceptor
from ._streams import ByteStream, Pipe
from ._oneshot import OneShot
from ._runner import (
    DEFAULT_INTERCEPTED_SIGNALS,
    LaunchRequest,
    ProcessRunner,
    TerminationReason,
)
from ._executable import Executable
from ._process import AsyncProcess, Priority
from ._capture import CaptureOptions, OutputAccumulator, run_process
from ._shell import bash, csh, dash, ksh, run_shell, sh, shell_command, tcsh, zsh
