"""
Platform tag: the single place where sys.platform is inspected.

Everything platform-conditional elsewhere is a dict keyed by Platform.
"""
import enum
import sys


class UnsupportedPlatformError(RuntimeError):
    """Raised when the launcher runs somewhere it has no code path for."""


class Platform(enum.Enum):
    WINDOWS = "windows"
    LINUX = "linux"


def current_platform(sys_platform=None) -> Platform:
    name = sys_platform if sys_platform is not None else sys.platform
    if name == "win32":
        return Platform.WINDOWS
    if name.startswith("linux"):
        return Platform.LINUX
    raise UnsupportedPlatformError(f"Unsupported platform: {name}")
