# Like trio.run_process(), but built on AsyncProcess so that output can be
# teed to our own console while it's captured, and errors carry it along

import enum
import logging
import signal
import sys
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import outcome
import trio

from ._errors import AsyncProcessError, ProcessError, ProcessErrorWithOutput
from ._executable import Executable
from ._lock import Lock
from ._process import AsyncProcess, Priority
from ._runner import Binding
from ._streams import ByteStream

logger = logging.getLogger(__name__)


class CaptureOptions(enum.Flag):
    """What :func:`run_process` does with the child's output.

    If neither :attr:`STDOUT` nor :attr:`STDERR` is set, both streams are
    captured when capturing is requested at all.
    """

    NONE = 0
    #: Capture standard output.
    STDOUT = 1 << 0
    #: Capture standard error.
    STDERR = 1 << 1
    #: Also copy captured output to our own stdout and stderr as it arrives.
    SPLIT_OUTPUT = 1 << 8
    #: Attach the child's standard error to the exception raised on failure.
    STDERR_IN_ERRORS = 1 << 9
    DEFAULT = SPLIT_OUTPUT | STDERR_IN_ERRORS


class OutputAccumulator:
    """Collects chunks of a child's output."""

    def __init__(self) -> None:
        self._buffer = Lock(bytearray())

    def append(self, chunk: bytes) -> None:
        self._buffer.with_lock(lambda buffer: buffer.extend(chunk))

    @property
    def data(self) -> bytes:
        return self._buffer.with_lock(bytes)

    @property
    def text(self) -> str:
        """Everything collected so far, decoded as UTF-8 with one trailing
        newline removed. Invalid UTF-8 is replaced rather than rejected."""
        data = self.data
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            text = data.decode("utf-8", errors="replace")
        if text.endswith("\n"):
            text = text[:-1]
        return text


def _console(stream: Any) -> Any:
    # A text stream's binary layer, or failing that its file descriptor.
    # None when there is no console at all (pythonw, daemons).
    if stream is None:
        return None
    buffer = getattr(stream, "buffer", None)
    return buffer if buffer is not None else stream.fileno()


def _streams_to_capture(
    capture_output: bool, options: CaptureOptions
) -> Tuple[bool, bool]:
    if not capture_output:
        return False, False
    if not options & (CaptureOptions.STDOUT | CaptureOptions.STDERR):
        return True, True
    return CaptureOptions.STDOUT in options, CaptureOptions.STDERR in options


async def _drain(stream: ByteStream, sinks: List[OutputAccumulator]) -> None:
    async with stream:
        async for chunk in stream:
            for sink in sinks:
                sink.append(chunk)


def _first_failure(results: Iterable[outcome.Outcome]) -> Optional[BaseException]:
    for result in results:
        if isinstance(result, outcome.Error):
            if not isinstance(result.error, Exception):
                # Cancelled, KeyboardInterrupt and friends pass through as is
                result.unwrap()
            return result.error
    return None


async def run_process(
    executable: Executable,
    arguments: Optional[Sequence[str]] = None,
    *,
    environment: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
    priority: Optional[Priority] = None,
    capture_output: bool = False,
    capture_options: CaptureOptions = CaptureOptions.DEFAULT,
    stdin: Binding = None,
    intercepted_signals: Optional[Iterable[Union[signal.Signals, int]]] = None,
    shutdown_signal: signal.Signals = signal.SIGTERM,
    shutdown_timeout: float = 5,
) -> str:
    """Run ``executable`` with ``arguments``, wait for it to complete, and
    return what it printed.

    Standard output and standard error are drained concurrently with the
    wait, each by its own task. If one of those tasks fails, the others are
    still allowed to read everything the child wrote before the failure is
    reported, so the diagnostic output isn't lost.

    Args:
      executable: What to run.
      arguments: The arguments to pass it.
      environment (dict): The child's environment. By default it inherits
          ours.
      cwd (str): The child's working directory. By default it inherits ours.
      priority (Priority): How much CPU to give the child.
      capture_output (bool): If true, collect the child's output (which
          streams is controlled by ``capture_options``) and return it.
          Otherwise the child writes straight to our standard output.
      capture_options (CaptureOptions): The capture policy. The default tees
          captured output to our console and attaches the child's standard
          error to any exception.
      stdin: Where the child's standard input comes from; see
          :attr:`AsyncProcess.stdin`. By default it's inherited.
      intercepted_signals: The signals to forward to the child while it
          runs. Defaults to SIGINT and SIGTERM.
      shutdown_signal (int): The signal sent to the child if this call is
          cancelled.
      shutdown_timeout (float): The number of seconds to wait for the child
          to exit after ``shutdown_signal``, before killing it with SIGKILL.

    Returns:
      str: The captured output, decoded, with one trailing newline removed;
      or ``""`` if ``capture_output`` is false.

    Raises:
      ProcessErrorWithOutput: if the run failed and the child wrote
          something to the stream used to annotate errors (its standard
          error if ``STDERR_IN_ERRORS`` is set, otherwise everything
          captured). ``error`` is one of the exceptions below.
      ProcessTerminatedError: if the child exited with a nonzero status.
      UncaughtSignalError: if we were sent one of ``intercepted_signals``
          while the child ran.
      ProcessError: if the child couldn't be launched, or its output
          couldn't be read.

    """
    process = AsyncProcess(executable)
    process.arguments = list(arguments or ())
    if environment is not None:
        process.environment = environment
    process.cwd = cwd
    if priority is not None:
        process.priority = priority
    process.stdin = stdin
    if intercepted_signals is not None:
        process.intercepted_signals = intercepted_signals
    process.shutdown_signal = shutdown_signal
    process.shutdown_timeout = shutdown_timeout

    capture_stdout, capture_stderr = _streams_to_capture(
        capture_output, capture_options
    )
    stderr_in_errors = CaptureOptions.STDERR_IN_ERRORS in capture_options
    split_output = CaptureOptions.SPLIT_OUTPUT in capture_options

    combined = OutputAccumulator()
    stderr_only = OutputAccumulator()
    drains: List[Tuple[ByteStream, List[OutputAccumulator]]] = []

    if capture_stdout:
        stdout = ByteStream(tee=_console(sys.stdout) if split_output else None)
        process.stdout = stdout
        drains.append((stdout, [combined]))
    if capture_stderr or stderr_in_errors:
        sinks = []
        if capture_stderr:
            sinks.append(combined)
        if stderr_in_errors:
            sinks.append(stderr_only)
        stderr = ByteStream(tee=_console(sys.stderr) if split_output else None)
        process.stderr = stderr
        drains.append((stderr, sinks))

    results: Dict[str, outcome.Outcome] = {}

    async def capture(key: str, async_fn: Any, *args: Any) -> None:
        results[key] = await outcome.acapture(async_fn, *args)

    async with trio.open_nursery() as nursery:
        nursery.start_soon(capture, "run", process.run, name=f"<run {process!r}>")
        for index, (stream, sinks) in enumerate(drains):
            nursery.start_soon(capture, f"drain{index}", _drain, stream, sinks)

    failure = _first_failure(
        [results["run"]] + [results[f"drain{index}"] for index in range(len(drains))]
    )
    if failure is None:
        return combined.text if capture_output else ""

    error = (
        failure if isinstance(failure, AsyncProcessError) else ProcessError(failure)
    )
    output = (stderr_only if stderr_in_errors else combined).text
    logger.debug("%r failed: %r", process, error)
    if output:
        raise ProcessErrorWithOutput.wrap(error, output) from failure
    if error is failure:
        raise error
    raise error from failure
