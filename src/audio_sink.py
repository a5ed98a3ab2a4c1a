"""
Picks the system audio player that reads raw PCM on stdin.

The decoder emits signed 16-bit little-endian stereo at 32 kHz.
"""
from typing import Callable

from shell_cmd import Command

# Preference order; each entry is (program, arguments for raw s16le/32000/2ch)
CONSUMERS = (
    ("paplay", ("--raw", "--format=s16le", "--rate=32000", "--channels=2")),
    ("aplay", ("-t", "raw", "-f", "s16_le", "-r", "32000", "-c", "2", "-q")),
    ("ffplay", (
        "-f", "s16le", "-ar", "32000", "-ac", "2",
        "-i", "pipe:0",
        "-loglevel", "quiet",
        "-fflags", "nobuffer",
        "-flags", "low_delay",
        "-analyzeduration", "0",
        "-probesize", "32",
        "-nodisp", "-framedrop",
        "-autoexit",
    )),
)


def select_consumer(exists: Callable[[str], bool]) -> Command:
    """First invokable player; paplay if none probe as present."""
    for program, args in CONSUMERS:
        if exists(program):
            return Command(program, args)
    program, args = CONSUMERS[0]
    return Command(program, args)
