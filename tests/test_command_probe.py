#!/usr/bin/env python3
"""
Tests for command_probe.py - invokability checks and the absence exit-code table.
"""

import errno
import sys
import pytest
from unittest.mock import Mock, patch
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from command_probe import command_exists, reports_absent
from platform_tag import Platform


def _proc(code):
    proc = Mock()
    proc.wait.return_value = code
    return proc


class TestReportsAbsent:
    """Tests for the reserved exit codes."""

    def test_linux_codes(self):
        assert reports_absent(127, Platform.LINUX)
        assert reports_absent(126, Platform.LINUX)
        assert not reports_absent(1, Platform.LINUX)
        assert not reports_absent(9009, Platform.LINUX)

    def test_windows_codes(self):
        assert reports_absent(9009, Platform.WINDOWS)
        assert not reports_absent(127, Platform.WINDOWS)


class TestCommandExists:
    """Tests for command_exists with a mocked process start."""

    @pytest.mark.parametrize("code", [0, 1, 2, 255])
    def test_ordinary_exit_means_present(self, code):
        with patch('command_probe.subprocess.Popen', return_value=_proc(code)):
            assert command_exists("resize", Platform.LINUX) is True

    @pytest.mark.parametrize("code", [126, 127])
    def test_reserved_exit_means_absent_linux(self, code):
        with patch('command_probe.subprocess.Popen', return_value=_proc(code)):
            assert command_exists("resize", Platform.LINUX) is False

    def test_reserved_exit_means_absent_windows(self):
        with patch('command_probe.subprocess.Popen', return_value=_proc(9009)):
            assert command_exists("wt", Platform.WINDOWS) is False

    def test_not_found_error_means_absent(self):
        with patch('command_probe.subprocess.Popen', side_effect=FileNotFoundError(errno.ENOENT, "nope")):
            assert command_exists("konsole", Platform.LINUX) is False

    def test_permission_error_means_absent(self):
        with patch('command_probe.subprocess.Popen', side_effect=PermissionError(errno.EACCES, "denied")):
            assert command_exists("konsole", Platform.LINUX) is False

    def test_windows_bad_exe_means_absent(self):
        err = OSError(errno.EINVAL, "bad exe")
        err.winerror = 193
        with patch('command_probe.subprocess.Popen', side_effect=err):
            assert command_exists("mintty", Platform.WINDOWS) is False

    def test_other_start_errors_propagate(self):
        with patch('command_probe.subprocess.Popen', side_effect=OSError(errno.EMFILE, "too many files")):
            with pytest.raises(OSError):
                command_exists("xterm", Platform.LINUX)

    def test_probe_starts_bare_with_output_discarded(self):
        with patch('command_probe.subprocess.Popen', return_value=_proc(0)) as mock_popen:
            command_exists("aplay", Platform.LINUX)
        args, kwargs = mock_popen.call_args
        assert args[0] == ["aplay"]
        assert kwargs["stdout"] is not None
        assert kwargs["stderr"] is not None


class TestCommandExistsReal:
    """Real process starts."""

    def test_missing_program(self):
        assert command_exists("apollo-no-such-program-xyz", Platform.LINUX) is False

    def test_python_is_present(self):
        # stdin is the null device, so the interpreter exits straight away
        assert command_exists(sys.executable, Platform.LINUX) is True
