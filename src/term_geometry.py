"""
Terminal geometry — current size, in-place resize, and host emulator lookup.

Windows goes through the console API (ctypes, kernel32). Linux asks
`stty size` for the size and the xterm `resize` utility to change it.
"""
import ctypes
import logging
import os
import struct
import subprocess
import sys
from typing import NamedTuple, Optional

import psutil

import command_probe
import shell_cmd
from platform_tag import Platform

log = logging.getLogger("term_geometry")

# How far up the process tree to look for the terminal emulator
ANCESTRY_DEPTH = 3

# Executable base name -> canonical terminal identity
TERMINAL_NAMES = {
    Platform.LINUX: {
        "gnome-terminal-server": "gnome-terminal",
        "gnome-terminal": "gnome-terminal",
        "konsole": "konsole",
        "xterm": "xterm",
        "lxterminal": "lxterminal",
    },
    Platform.WINDOWS: {
        "windowsterminal": "wt",
        "wt": "wt",
        "mintty": "mintty",
    },
}


class GeometryUnavailableError(RuntimeError):
    """The terminal size could not be read."""


class ResizeUnavailableError(RuntimeError):
    """No in-place resize tool exists on this system."""


class Geometry(NamedTuple):
    columns: int
    rows: int

    def covers(self, target: "Geometry") -> bool:
        return self.columns >= target.columns and self.rows >= target.rows

    def within(self, target: "Geometry", tolerance: "Geometry") -> bool:
        """Covers target without exceeding it by more than tolerance."""
        return (self.covers(target)
                and self.columns <= target.columns + tolerance.columns
                and self.rows <= target.rows + tolerance.rows)

    def __str__(self):
        return f"{self.columns}x{self.rows}"


# ---------------------------------------------------------------------------
# Windows console API
# ---------------------------------------------------------------------------

STD_OUTPUT_HANDLE = -11


class COORD(ctypes.Structure):
    _fields_ = [("X", ctypes.c_short), ("Y", ctypes.c_short)]


class SMALL_RECT(ctypes.Structure):
    _fields_ = [
        ("Left", ctypes.c_short),
        ("Top", ctypes.c_short),
        ("Right", ctypes.c_short),
        ("Bottom", ctypes.c_short),
    ]


class CONSOLE_SCREEN_BUFFER_INFO(ctypes.Structure):
    _fields_ = [
        ("dwSize", COORD),
        ("dwCursorPosition", COORD),
        ("wAttributes", ctypes.c_ushort),
        ("srWindow", SMALL_RECT),
        ("dwMaximumWindowSize", COORD),
    ]


def _kernel32():
    from ctypes import wintypes
    kernel32 = ctypes.windll.kernel32
    # Default c_int restype truncates 64-bit handles
    kernel32.GetStdHandle.restype = wintypes.HANDLE
    return kernel32


def _screen_buffer_info(kernel32, handle) -> CONSOLE_SCREEN_BUFFER_INFO:
    info = CONSOLE_SCREEN_BUFFER_INFO()
    if not kernel32.GetConsoleScreenBufferInfo(handle, ctypes.byref(info)):
        raise GeometryUnavailableError("GetConsoleScreenBufferInfo failed")
    return info


def _windows_size() -> Geometry:
    kernel32 = _kernel32()
    info = _screen_buffer_info(kernel32, kernel32.GetStdHandle(STD_OUTPUT_HANDLE))
    win = info.srWindow
    return Geometry(win.Right - win.Left + 1, win.Bottom - win.Top + 1)


def _windows_resize(target: Geometry) -> bool:
    kernel32 = _kernel32()
    handle = kernel32.GetStdHandle(STD_OUTPUT_HANDLE)
    try:
        info = _screen_buffer_info(kernel32, handle)
    except GeometryUnavailableError:
        return False
    # The buffer has to be at least as large as the window
    buf = COORD(max(info.dwSize.X, target.columns), max(info.dwSize.Y, target.rows))
    kernel32.SetConsoleScreenBufferSize(handle, buf)
    rect = SMALL_RECT(0, 0, target.columns - 1, target.rows - 1)
    return bool(kernel32.SetConsoleWindowInfo(handle, True, ctypes.byref(rect)))


# ---------------------------------------------------------------------------
# Linux
# ---------------------------------------------------------------------------

def _stty_size() -> Geometry:
    try:
        result = subprocess.run(["stty", "size"], capture_output=True, text=True)
    except OSError as e:
        raise GeometryUnavailableError(f"stty failed: {e}") from e
    if result.returncode != 0:
        raise GeometryUnavailableError(f"stty exited {result.returncode}: {result.stderr.strip()}")
    parts = result.stdout.split()
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise GeometryUnavailableError(f"Unexpected stty output: {result.stdout!r}")
    rows, cols = int(parts[0]), int(parts[1])
    return Geometry(cols, rows)


def _xterm_resize(target: Geometry) -> bool:
    cmd = shell_cmd.Command("resize", ("-s", str(target.rows), str(target.columns)))
    # resize prints COLUMNS=/LINES= assignments on success
    code = shell_cmd.run(cmd, Platform.LINUX, quiet=True)
    if command_probe.reports_absent(code, Platform.LINUX):
        raise ResizeUnavailableError("resize")
    return code == 0


_SIZE_READERS = {
    Platform.WINDOWS: _windows_size,
    Platform.LINUX: _stty_size,
}

_RESIZERS = {
    Platform.WINDOWS: _windows_resize,
    Platform.LINUX: _xterm_resize,
}


def current_size(platform: Platform) -> Geometry:
    """Current terminal size as (columns, rows)."""
    size = _SIZE_READERS[platform]()
    log.debug(f"Terminal size: {size}")
    return size


def resize_in_place(platform: Platform, target: Geometry) -> bool:
    """Ask the hosting terminal to become target-sized.

    Returns whether the request was accepted; the caller re-reads the size.
    Raises ResizeUnavailableError if the resize tool is missing.
    """
    log.info(f"Resizing in place to {target}")
    return _RESIZERS[platform](target)


def pixel_size(stream=None) -> Optional[Geometry]:
    """Window size in pixels from TIOCGWINSZ, or None if not reported."""
    if os.name != "posix":
        return None
    import fcntl
    import termios
    stream = stream or sys.stdout
    try:
        packed = fcntl.ioctl(stream.fileno(), termios.TIOCGWINSZ, b"\0" * 8)
    except (OSError, ValueError):
        return None
    _rows, _cols, xpixel, ypixel = struct.unpack("HHHH", packed)
    if not xpixel or not ypixel:
        return None
    return Geometry(xpixel, ypixel)


def _base_name(name: str) -> str:
    name = os.path.basename(name).lower()
    if name.endswith(".exe"):
        name = name[:-4]
    return name


def host_terminal(platform: Platform, process=None) -> Optional[str]:
    """Identify the terminal emulator hosting this process.

    Only the parent, grandparent and great-grandparent are inspected, so a
    multiplexer or wrapper script in between can hide the real emulator.
    """
    table = TERMINAL_NAMES[platform]
    proc = process if process is not None else psutil.Process()
    try:
        for _ in range(ANCESTRY_DEPTH):
            proc = proc.parent()
            if proc is None:
                break
            name = _base_name(proc.name())
            if name in table:
                log.debug(f"Host terminal: {table[name]} (pid {proc.pid})")
                return table[name]
    except psutil.Error as e:
        log.debug(f"Ancestry walk stopped: {e}")
    return None
