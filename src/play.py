#!/usr/bin/env python3
"""
Apollo Play - v0.1.0
Plays an SPC file by piping apollo-spc-program's raw PCM into a system audio
player (paplay, aplay or ffplay).

- Decoder binary is checked against known SHA-256 digests before it runs
- Terminal must be at least 133x33 for the decoder's display: resized in
  place when possible, otherwise reopened in a sized terminal emulator
- Launcher flags are consumed, everything else passes to apollo-spc-program

Usage:
    apollo-play <file.spc> [decoder options...]

Logging goes to the file named by APOLLO_PLAY_LOG (off when unset).
"""
import argparse
import logging
import os
import sys
from pathlib import Path

import integrity_gate
import term_geometry
from audio_sink import select_consumer
from command_probe import command_exists
from platform_tag import Platform, current_platform
from relaunch import MARKER, MalformedHintError, Orchestrator, Outcome, parse_pixel_hint, split_marker
from shell_cmd import Command, dialect_for, escape, run_pipe

VERSION = "0.1.0"

VERIFY_HASH = True

DECODER_NAME = "apollo-spc-program"
DECODER_SUFFIX = {
    Platform.WINDOWS: ".exe",
    Platform.LINUX: "",
}

TERM_RESET = "\x1bc"

log = logging.getLogger("play")


def setup_logging():
    root = logging.getLogger()
    path = os.environ.get("APOLLO_PLAY_LOG")
    if not path:
        # Anything on stderr would land in the middle of the decoder's display
        root.addHandler(logging.NullHandler())
        return
    log_dir = os.path.dirname(os.path.abspath(path))
    os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(
        "[%(asctime)s] %(levelname)s %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)
    level = os.environ.get("APOLLO_PLAY_LOG_LEVEL", "DEBUG").upper()
    root.setLevel(getattr(logging, level, logging.DEBUG))


def program_directory() -> Path:
    override = os.environ.get("APOLLO_PLAY_HOME")
    if override:
        return Path(override)
    return Path(__file__).resolve().parent


def decoder_path(platform: Platform) -> Path:
    return program_directory() / f"{DECODER_NAME}{DECODER_SUFFIX[platform]}"


def self_command() -> Command:
    """How a replacement terminal starts this launcher again."""
    # By path: `-m play` only resolves when the launcher is installed
    return Command(sys.executable, (str(Path(__file__).resolve()),))


def build_parser() -> argparse.ArgumentParser:
    # No -h: help and every other flag belong to the decoder
    parser = argparse.ArgumentParser(
        prog="apollo-play",
        description=f"Apollo Play v{VERSION}",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument(MARKER, dest="relaunch", nargs="?", const="", default=None,
                        metavar="W,H",
                        help="Already running in a resized terminal (optional window size in pixels)")
    return parser


def clear_screen():
    sys.stdout.write(TERM_RESET)
    sys.stdout.flush()


def _wait_for_key():
    # A relaunched window closes as soon as we exit; keep the message readable
    if not sys.stdin.isatty():
        return
    sys.stdout.write("\nPress Enter to continue...")
    sys.stdout.flush()
    try:
        input()
    except EOFError:
        pass


def _is_file_error(fwd_args) -> bool:
    """True when the decoder will only print usage or an error."""
    return not fwd_args or fwd_args[0].startswith("--") or not os.path.isfile(fwd_args[0])


def main(argv=None) -> int:
    setup_logging()
    platform = current_platform()

    # The marker may sit after a `--`, which argparse would stop at; pull it out first
    fwd_args, own_args = split_marker(sys.argv[1:] if argv is None else argv)
    args = build_parser().parse_args(own_args)
    log.info(f"Apollo Play v{VERSION} args={fwd_args} relaunch={args.relaunch!r}")

    relaunched = args.relaunch is not None
    pixel_hint = None
    if args.relaunch:
        try:
            pixel_hint = parse_pixel_hint(args.relaunch)
        except MalformedHintError:
            sys.stderr.write("invalid value provided for force-no-resize\n")
            sys.stderr.flush()
            _wait_for_key()
            return 1

    file_error = _is_file_error(fwd_args)

    decoder = decoder_path(platform)
    if VERIFY_HASH:
        allowed = integrity_gate.load_allowlist(platform, program_directory())
        try:
            verified = integrity_gate.verify(decoder, allowed)
        except OSError as e:
            log.error(f"Cannot read {decoder}: {e}")
            sys.stderr.write(f"Could not read program {escape(str(decoder), dialect_for(platform))}: "
                             f"{e.strerror or e}\n")
            return 1
        if not verified:
            sys.stderr.write(f"Could not verify hash string of program "
                             f"{escape(str(decoder), dialect_for(platform))}\n")
            return 1

    host = term_geometry.host_terminal(platform)
    relaunch_args = list(fwd_args)
    if not file_error:
        # The replacement terminal may start in another working directory
        relaunch_args[0] = os.path.abspath(relaunch_args[0])

    decision = Orchestrator(
        platform,
        relaunch_args,
        self_command(),
        host=host,
        relaunched=relaunched,
        pixel_hint=pixel_hint,
        skip_resize=file_error,
    ).decide()
    log.info(f"Terminal: {decision.outcome.value} (host={host})")
    if decision.outcome is Outcome.SPAWNED_REPLACEMENT:
        return 0

    consumer = select_consumer(lambda name: command_exists(name, platform))
    producer = Command(str(decoder), tuple(fwd_args))

    try:
        status = run_pipe(producer, consumer, platform)
    except KeyboardInterrupt:
        clear_screen()
        return 0
    log.info(f"Pipeline exited {status}")

    if not file_error:
        clear_screen()
    return 0


if __name__ == "__main__":
    sys.exit(main())
