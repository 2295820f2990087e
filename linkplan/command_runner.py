"""Execution of external build tools (CMake, protoc, bridge compiler, cargo)."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence, TextIO
import os
import shlex
import subprocess
import sys


def quote_command(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(part) for part in command)


@dataclass
class CommandResult:
    """Outcome of one tool invocation.

    ``output`` is empty when the tool wrote straight to the runner's output
    stream instead of being captured.
    """

    command: Sequence[str]
    returncode: int
    output: str = ""
    note: str | None = None


class CommandError(RuntimeError):
    """A build tool exited non-zero; the build stops at that step."""

    def __init__(self, result: CommandResult):
        step = f"Build step '{result.note}'" if result.note else "Build step"
        message = f"{step} failed with exit code {result.returncode}: {quote_command(result.command)}"
        if result.output:
            message = f"{message}\n{result.output.rstrip()}"
        super().__init__(message)
        self.result = result


class CommandRunner:
    """Interface the native build and the Android driver launch tools through."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        raise NotImplementedError


def _child_environment(overrides: Mapping[str, str] | None) -> Dict[str, str] | None:
    if not overrides:
        return None
    child = dict(os.environ)
    child.update(overrides)
    return child


class SubprocessCommandRunner(CommandRunner):
    """Runs tools through :mod:`subprocess`.

    Streamed tools write to ``output`` (standard error by default), never to
    standard output, which carries the directive stream. Captured runs merge
    the tool's stdout and stderr into one text.
    """

    def __init__(self, output: TextIO | None = None) -> None:
        self._output = output

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        options: Dict[str, Any] = {
            "cwd": str(cwd) if cwd else None,
            "env": _child_environment(env),
            "check": False,
        }
        if stream:
            sink = self._output if self._output is not None else sys.stderr
            sink.flush()
            options["stdout"] = sink
        else:
            options.update(stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)

        process = subprocess.run(list(command), **options)
        result = CommandResult(
            command=list(command),
            returncode=process.returncode,
            output="" if stream else process.stdout,
            note=note,
        )
        if check and result.returncode != 0:
            raise CommandError(result)
        return result


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]
    note: str | None


class RecordingCommandRunner(CommandRunner):
    """Records commands instead of executing them (``--dry-run``)."""

    def __init__(self) -> None:
        self.commands: List[RecordedCommand] = []

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        self.commands.append(
            RecordedCommand(command=list(command), cwd=str(cwd) if cwd else None, env=dict(env or {}), note=note)
        )
        return CommandResult(command=list(command), returncode=0, note=note)

    def iter_formatted(self) -> Iterable[str]:
        for record in self.commands:
            prefix = f"[dry-run] {record.note}" if record.note else "[dry-run]"
            location = f" (cwd={record.cwd})" if record.cwd else ""
            yield f"{prefix}{location} {quote_command(record.command)}"


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "quote_command",
]
