import shlex
from typing import Any, Sequence

from ._capture import run_process
from ._executable import Executable

__all__ = [
    "bash",
    "sh",
    "zsh",
    "csh",
    "dash",
    "ksh",
    "tcsh",
    "run_shell",
    "shell_command",
]


def shell_command(command: str, arguments: Sequence[str] = ()) -> str:
    """Return ``command`` followed by each of ``arguments``, quoted so the
    shell sees them as single words.

    ``command`` itself is passed through unquoted, so it may contain
    pipelines, redirections and so on.
    """
    return " ".join([command, *(shlex.quote(str(arg)) for arg in arguments)])


async def run_shell(
    executable: Executable,
    command: str,
    arguments: Sequence[str] = (),
    **options: Any,
) -> str:
    """Run ``command`` with ``executable -c``. ``options`` are passed on to
    :func:`run_process`."""
    return await run_process(
        executable, ["-c", shell_command(command, arguments)], **options
    )


async def bash(command: str, arguments: Sequence[str] = (), **options: Any) -> str:
    return await run_shell(Executable.BASH, command, arguments, **options)


async def sh(command: str, arguments: Sequence[str] = (), **options: Any) -> str:
    return await run_shell(Executable.SH, command, arguments, **options)


async def zsh(command: str, arguments: Sequence[str] = (), **options: Any) -> str:
    return await run_shell(Executable.ZSH, command, arguments, **options)


async def csh(command: str, arguments: Sequence[str] = (), **options: Any) -> str:
    return await run_shell(Executable.CSH, command, arguments, **options)


async def dash(command: str, arguments: Sequence[str] = (), **options: Any) -> str:
    return await run_shell(Executable.DASH, command, arguments, **options)


async def ksh(command: str, arguments: Sequence[str] = (), **options: Any) -> str:
    return await run_shell(Executable.KSH, command, arguments, **options)


async def tcsh(command: str, arguments: Sequence[str] = (), **options: Any) -> str:
    return await run_shell(Executable.TCSH, command, arguments, **options)
