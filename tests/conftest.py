import sys

import pytest

from trio_asyncprocess import AsyncProcess, Executable


@pytest.fixture
def interpreter() -> Executable:
    return Executable.bin(sys.executable)


@pytest.fixture
def python(interpreter):
    """Build an AsyncProcess that runs the given lines with this interpreter."""

    def make(*code_lines: str) -> AsyncProcess:
        process = AsyncProcess(interpreter)
        process.arguments = ["-c", "\n".join(code_lines)]
        return process

    return make
