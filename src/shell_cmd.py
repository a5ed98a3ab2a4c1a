"""
Shell command building and process execution.

Command lines are only ever assembled from a Command (raw program name plus
raw arguments); escaping happens in render(), never at call sites.

Known limitations, left as-is:
- BATCH: '!' is not handled. Delayed expansion is not enabled for cmd /c,
  so it should not need special handling.
- POSIX: history expansion ('!') is not escaped. It is off in bash -c.
"""
import enum
import logging
import subprocess
from typing import NamedTuple, Sequence, Tuple

from platform_tag import Platform

log = logging.getLogger("shell_cmd")


class Dialect(enum.Enum):
    POSIX = "posix"   # bash
    BATCH = "batch"   # cmd.exe


DIALECTS = {
    Platform.WINDOWS: Dialect.BATCH,
    Platform.LINUX: Dialect.POSIX,
}


def dialect_for(platform: Platform) -> Dialect:
    return DIALECTS[platform]


def _escape_posix(value: str) -> str:
    value = (value.replace("\\", "\\\\")
                  .replace('"', '\\"')
                  .replace("$", "\\$")
                  .replace("`", "\\`"))
    return f'"{value}"'


def _escape_batch(value: str) -> str:
    # No escape sequence for '"' survives cmd reliably, so these are dropped
    value = (value.replace("^", "")
                  .replace("%", "")
                  .replace('"', ""))
    return f'"{value}"'


_ESCAPERS = {
    Dialect.POSIX: _escape_posix,
    Dialect.BATCH: _escape_batch,
}


def escape(value: str, dialect: Dialect) -> str:
    """Quote a raw string so the given shell reads it back as one argument."""
    return _ESCAPERS[dialect](value)


class Command(NamedTuple):
    program: str
    args: Tuple[str, ...] = ()

    def extend(self, *more: str) -> "Command":
        return Command(self.program, self.args + tuple(more))

    def render(self, dialect: Dialect) -> str:
        return " ".join(escape(part, dialect) for part in (self.program,) + self.args)


def _shell_invocation(line: str, dialect: Dialect):
    if dialect is Dialect.POSIX:
        return ["/bin/bash", "-c", line]
    # /s: strip exactly the outer pair of quotes, keep everything inside
    return f'cmd.exe /d /s /c "{line}"'


def run(command: Command, platform: Platform, quiet: bool = False) -> int:
    """Run one command through the platform shell and wait for it."""
    line = command.render(dialect_for(platform))
    log.debug(f"Exec: {line}")
    stdout = subprocess.DEVNULL if quiet else None
    return subprocess.call(_shell_invocation(line, dialect_for(platform)), stdout=stdout)


def run_pipe(producer: Command, consumer: Command, platform: Platform) -> int:
    """Pipe producer stdout into consumer stdin and wait for the pipeline.

    Both sides inherit this process's terminal; only the pipe carries data.
    Returns the exit status of the pipeline tail (the consumer).
    """
    dialect = dialect_for(platform)
    line = f"{producer.render(dialect)} | {consumer.render(dialect)}"
    log.info(f"Pipeline: {line}")
    return subprocess.call(_shell_invocation(line, dialect))


def spawn_detached(argv: Sequence[str], platform: Platform) -> subprocess.Popen:
    """Start a program without a shell and without waiting for it.

    OSError from the start is left to the caller.
    """
    log.info(f"Spawning detached: {list(argv)}")
    kwargs = dict(
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    if platform is Platform.WINDOWS:
        kwargs["creationflags"] = (getattr(subprocess, "DETACHED_PROCESS", 0)
                                   | getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0))
    else:
        kwargs["start_new_session"] = True
    return subprocess.Popen(list(argv), **kwargs)
