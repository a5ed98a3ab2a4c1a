"""
Capability probe. Is a named program invokable here?

The program is actually started (no arguments, output discarded) because a
plain filesystem check misses PATH/PATHEXT resolution on Windows. The
reserved "not found" exit codes and start errors live only in this module.

Known risk: there is no timeout. A program that never exits when started
bare (some terminal emulators) blocks the probe.
"""
import errno
import logging
import subprocess

from platform_tag import Platform

log = logging.getLogger("command_probe")

# Exit codes the platform shell uses for "no such command"
ABSENT_EXIT_CODES = {
    Platform.WINDOWS: frozenset({9009}),      # not recognized as internal or external command
    Platform.LINUX: frozenset({126, 127}),    # not executable / not found
}

ABSENT_ERRNOS = frozenset({errno.ENOENT, errno.EACCES, errno.ENOEXEC})
# ERROR_FILE_NOT_FOUND, ERROR_ACCESS_DENIED, ERROR_INVALID_DATA, ERROR_BAD_EXE_FORMAT
ABSENT_WINERRORS = frozenset({2, 5, 13, 193})


def reports_absent(exit_code: int, platform: Platform) -> bool:
    """True if a shell exit status means the command itself was missing."""
    return exit_code in ABSENT_EXIT_CODES[platform]


def _start_error_is_absence(exc: OSError) -> bool:
    if isinstance(exc, (FileNotFoundError, PermissionError)):
        return True
    if getattr(exc, "winerror", None) in ABSENT_WINERRORS:
        return True
    return exc.errno in ABSENT_ERRNOS


def command_exists(name: str, platform: Platform) -> bool:
    try:
        proc = subprocess.Popen(
            [name],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as e:
        if _start_error_is_absence(e):
            log.debug(f"Probe {name}: absent ({e})")
            return False
        raise
    code = proc.wait()
    present = not reports_absent(code, platform)
    log.debug(f"Probe {name}: exit {code}, {'present' if present else 'absent'}")
    return present
