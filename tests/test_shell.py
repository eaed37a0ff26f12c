import os
import sys

import pytest

from trio_asyncprocess import (
    CaptureOptions,
    Executable,
    ProcessErrorWithOutput,
    bash,
    sh,
    shell_command,
)


class TestExecutable:
    def test_named_shells(self):
        assert Executable.BASH.path == "/bin/bash"
        assert Executable.TCSH.path == "/bin/tcsh"
        assert os.fspath(Executable.SH) == "/bin/sh"

    def test_default(self):
        expected = Executable.ZSH if sys.platform == "darwin" else Executable.SH
        assert Executable.default() == expected

    def test_bin(self, tmp_path):
        assert Executable.bin(tmp_path / "tool").path == str(tmp_path / "tool")


class TestShellCommand:
    def test_quotes_arguments_only(self):
        assert (
            shell_command("echo $1 | tr a-z A-Z", ["two words", "$HOME", "it's"])
            == "echo $1 | tr a-z A-Z 'two words' '$HOME' 'it'\"'\"'s'"
        )

    def test_no_arguments(self):
        assert shell_command("true") == "true"


class TestShellHelpers:
    @pytest.mark.trio
    async def test_sh(self):
        result = await sh(
            "printf '%s\\n'",
            ["two words", "$HOME"],
            capture_output=True,
            capture_options=CaptureOptions.STDERR_IN_ERRORS,
        )
        assert result == "two words\n$HOME"

    @pytest.mark.trio
    async def test_failure(self):
        with pytest.raises(ProcessErrorWithOutput) as info:
            await sh(
                "echo oops >&2; exit 3",
                capture_options=CaptureOptions.STDERR_IN_ERRORS,
            )
        assert info.value.error.code == 3
        assert info.value.output == "oops"

    @pytest.mark.trio
    @pytest.mark.skipif(not os.path.exists("/bin/bash"), reason="needs /bin/bash")
    async def test_bash(self):
        result = await bash(
            'echo "${BASH_VERSION:+bash}"',
            capture_output=True,
            capture_options=CaptureOptions.STDERR_IN_ERRORS,
        )
        assert result == "bash"
