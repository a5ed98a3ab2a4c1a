"""
Resize/relaunch orchestrator.

Decides once, at startup, how to get a terminal big enough for the decoder:

  1. already big enough          -> PROCEED_IN_PLACE
  2. resize the current terminal -> RESIZED_IN_PLACE   (first run only)
  3. open a new, sized emulator  -> SPAWNED_REPLACEMENT (caller exits)
  4. otherwise                   -> GAVE_UP

A relaunched process carries MARKER in its arguments and never relaunches
again. Every relaunch path appends MARKER to the forwarded vector.
"""
import enum
import logging
import math
from typing import Callable, List, NamedTuple, Optional, Sequence

import command_probe
import shell_cmd
import term_geometry
from platform_tag import Platform
from shell_cmd import Command, Dialect
from term_geometry import Geometry, GeometryUnavailableError, ResizeUnavailableError

log = logging.getLogger("relaunch")

MARKER = "--force-no-resize"

TARGET = Geometry(133, 33)
# Slack allowed above TARGET after a relaunch (pixel-approximated windows overshoot)
TOLERANCE = Geometry(5, 3)

# Konsole sizes windows in pixels; cell size to assume when the terminal won't say
KONSOLE_CELL_PX = (9.5, 20)

EMULATORS = {
    Platform.LINUX: ("gnome-terminal", "konsole", "xterm", "lxterminal"),
    Platform.WINDOWS: ("wt", "mintty", r"C:\msys64\usr\bin\mintty"),
}

# In-place resize tool to probe for; None means a native call is always there
RESIZE_TOOLS = {
    Platform.LINUX: "resize",
    Platform.WINDOWS: None,
}

# Accept a resize request and then do nothing with it
IGNORES_RESIZE = frozenset({"konsole"})


class State(enum.Enum):
    FRESH = "fresh"
    RELAUNCHED = "relaunched"


class Outcome(enum.Enum):
    PROCEED_IN_PLACE = "proceed-in-place"
    RESIZED_IN_PLACE = "resized-in-place"
    SPAWNED_REPLACEMENT = "spawned-replacement"
    GAVE_UP = "gave-up"


class Decision(NamedTuple):
    outcome: Outcome
    argv: Optional[List[str]] = None   # replacement terminal command, if spawned


class MalformedHintError(ValueError):
    pass


def split_marker(argv: Sequence[str]):
    """Separate MARKER (and the W,H token after it) from the other arguments.

    The marker is found at any position, including after a `--`.
    Returns (forwarded arguments, marker tokens).
    """
    rest, own = [], []
    i = 0
    while i < len(argv):
        if argv[i] == MARKER:
            own.append(MARKER)
            if i + 1 < len(argv) and not argv[i + 1].startswith("-"):
                own.append(argv[i + 1])
                i += 1
        else:
            rest.append(argv[i])
        i += 1
    return rest, own


def parse_pixel_hint(token: str) -> Geometry:
    """Parse the 'width,height' pixel token that may follow MARKER."""
    parts = token.split(",")
    if len(parts) != 2:
        raise MalformedHintError(token)
    try:
        width, height = int(parts[0]), int(parts[1])
    except ValueError:
        raise MalformedHintError(token) from None
    if width <= 0 or height <= 0:
        raise MalformedHintError(token)
    return Geometry(width, height)


def konsole_window_pixels(target: Geometry, size: Geometry,
                          pixels: Optional[Geometry]) -> Geometry:
    """Scale a character geometry to pixels using the current cell size."""
    if pixels is None:
        cell_w, cell_h = KONSOLE_CELL_PX
    else:
        cell_w, cell_h = pixels.columns / size.columns, pixels.rows / size.rows
    return Geometry(math.ceil(target.columns * cell_w), math.ceil(target.rows * cell_h))


# ---------------------------------------------------------------------------
# Emulator launch table
# ---------------------------------------------------------------------------

def _gnome_terminal(emulator, relaunch, target, size, pixels):
    line = relaunch.render(Dialect.POSIX)
    return [emulator, f"--geometry={target}", "--", "bash", "-c", f"{line}; exec bash"]


def _konsole(emulator, relaunch, target, size, pixels):
    window = konsole_window_pixels(target, size, pixels)
    line = relaunch.extend(f"{window.columns},{window.rows}").render(Dialect.POSIX)
    return [emulator, "--qwindowgeometry", str(window), "-e", "bash", "-c", line]


def _xterm(emulator, relaunch, target, size, pixels):
    return [emulator, "-geometry", str(target), "-e", "bash", "-c", relaunch.render(Dialect.POSIX)]


def _lxterminal(emulator, relaunch, target, size, pixels):
    # lxterminal splits the -e string itself, shell style
    return [emulator, f"--geometry={target}", "-e", relaunch.render(Dialect.POSIX)]


def _windows_terminal(emulator, relaunch, target, size, pixels):
    return [emulator, "--size", f"{target.columns},{target.rows}", relaunch.program, *relaunch.args]


def _mintty(emulator, relaunch, target, size, pixels):
    return [emulator, "--geometry", str(target), "-e", relaunch.program, *relaunch.args]


LAUNCHERS = {
    "gnome-terminal": _gnome_terminal,
    "konsole": _konsole,
    "xterm": _xterm,
    "lxterminal": _lxterminal,
    "wt": _windows_terminal,
    "mintty": _mintty,
}


def _launcher_key(emulator: str) -> str:
    return "mintty" if "mintty" in emulator else emulator


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class Orchestrator:
    def __init__(self, platform: Platform, forward_args: Sequence[str], self_command: Command,
                 host: Optional[str] = None, relaunched: bool = False,
                 pixel_hint: Optional[Geometry] = None, skip_resize: bool = False,
                 target: Geometry = TARGET,
                 probe: Optional[Callable[[str], bool]] = None,
                 size_reader: Optional[Callable[[], Geometry]] = None,
                 resizer: Optional[Callable[[Geometry], bool]] = None,
                 spawner: Optional[Callable[[List[str]], object]] = None,
                 pixel_reader: Optional[Callable[[], Optional[Geometry]]] = None):
        self.platform = platform
        self.forward_args = tuple(forward_args)
        self.self_command = self_command
        self.host = host
        self.state = State.RELAUNCHED if relaunched else State.FRESH
        self.pixel_hint = pixel_hint
        self.skip_resize = skip_resize
        self.target = target
        self.probe = probe or (lambda name: command_probe.command_exists(name, platform))
        self.size_reader = size_reader or (lambda: term_geometry.current_size(platform))
        self.resizer = resizer or (lambda geometry: term_geometry.resize_in_place(platform, geometry))
        self.spawner = spawner or (lambda argv: shell_cmd.spawn_detached(argv, platform))
        self.pixel_reader = pixel_reader or term_geometry.pixel_size
        self.spawn_attempts = 0

    def decide(self) -> Decision:
        if self.skip_resize:
            log.info("No playable file argument; leaving the terminal alone")
            return Decision(Outcome.PROCEED_IN_PLACE)

        try:
            size = self.size_reader()
        except GeometryUnavailableError as e:
            log.warning(f"Cannot read terminal size: {e}")
            return Decision(Outcome.GAVE_UP)

        if size.covers(self.target):
            if self.state is State.RELAUNCHED and not size.within(self.target, TOLERANCE):
                log.info(f"Relaunched terminal is {size}, above {self.target} "
                         f"(pixel hint: {self.pixel_hint})")
            log.info(f"Terminal {size} fits {self.target}")
            return Decision(Outcome.PROCEED_IN_PLACE)

        if self.state is State.RELAUNCHED:
            log.info(f"Relaunched terminal is only {size}; not relaunching again")
            return Decision(Outcome.GAVE_UP)

        if self._resize_in_place():
            return Decision(Outcome.RESIZED_IN_PLACE)

        decision = self._spawn_replacement(size)
        if decision is not None:
            return decision

        log.info(f"No way to reach {self.target}; continuing at {size}")
        return Decision(Outcome.GAVE_UP)

    def _resize_in_place(self) -> bool:
        if self.host in IGNORES_RESIZE:
            log.info(f"{self.host} ignores resize requests; skipping in-place resize")
            return False
        tool = RESIZE_TOOLS[self.platform]
        if tool is not None and not self.probe(tool):
            log.info(f"No {tool} utility; skipping in-place resize")
            return False
        try:
            accepted = self.resizer(self.target)
        except ResizeUnavailableError as e:
            log.info(f"Resize tool missing: {e}")
            return False
        if not accepted:
            log.info("Resize request refused")
            return False
        try:
            size = self.size_reader()
        except GeometryUnavailableError as e:
            log.warning(f"Cannot re-read terminal size: {e}")
            return False
        log.info(f"After resize: {size}")
        return size.covers(self.target)

    def _select_emulator(self) -> Optional[str]:
        candidates = EMULATORS[self.platform]
        if self.host in candidates and self.probe(self.host):
            return self.host
        for emulator in candidates:
            if emulator != self.host and self.probe(emulator):
                return emulator
        return None

    def relaunch_command(self) -> Command:
        """Command that re-runs this program with the marker appended."""
        return self.self_command.extend(*self.forward_args, MARKER)

    def _spawn_replacement(self, size: Geometry) -> Optional[Decision]:
        emulator = self._select_emulator()
        if emulator is None:
            log.info("No replacement terminal emulator available")
            return None
        builder = LAUNCHERS[_launcher_key(emulator)]
        argv = builder(emulator, self.relaunch_command(), self.target, size, self.pixel_reader())
        self.spawn_attempts += 1
        try:
            self.spawner(argv)
        except OSError as e:
            log.warning(f"Failed to launch {emulator}: {e}")
            return None
        log.info(f"Relaunched in {emulator}: {argv}")
        return Decision(Outcome.SPAWNED_REPLACEMENT, argv)
