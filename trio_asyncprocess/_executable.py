import os
import sys
from typing import ClassVar, Union

import attr


@attr.s(auto_attribs=True, frozen=True)
class Executable:
    """The program a process runs: one of the well-known shells, or any
    binary given by path via :meth:`bin`."""

    path: str

    BASH: ClassVar["Executable"]
    SH: ClassVar["Executable"]
    ZSH: ClassVar["Executable"]
    CSH: ClassVar["Executable"]
    DASH: ClassVar["Executable"]
    KSH: ClassVar["Executable"]
    TCSH: ClassVar["Executable"]

    @classmethod
    def bin(cls, path: Union[str, "os.PathLike[str]"]) -> "Executable":
        return cls(os.fspath(path))

    @classmethod
    def default(cls) -> "Executable":
        return cls.ZSH if sys.platform == "darwin" else cls.SH

    def __fspath__(self) -> str:
        return self.path


Executable.BASH = Executable("/bin/bash")
Executable.SH = Executable("/bin/sh")
Executable.ZSH = Executable("/bin/zsh")
Executable.CSH = Executable("/bin/csh")
Executable.DASH = Executable("/bin/dash")
Executable.KSH = Executable("/bin/ksh")
Executable.TCSH = Executable("/bin/tcsh")
