"""Include path recovery from a JSON compilation database."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Sequence
import json

INCLUDE_PREFIX = "-I"
SYSTEM_INCLUDE_FLAG = "-isystem"


class CompileCommandError(RuntimeError):
    """Raised when the compilation database cannot supply include paths."""


@dataclass(frozen=True, slots=True)
class CompileCommand:
    file: str
    command: str | None = None
    arguments: tuple[str, ...] = field(default_factory=tuple)

    def tokens(self) -> List[str]:
        if self.arguments:
            return list(self.arguments)
        return (self.command or "").split()

    @classmethod
    def from_record(cls, record: Any, *, index: int) -> "CompileCommand":
        if not isinstance(record, dict):
            raise CompileCommandError(f"compile_commands.json entry {index} is not an object")
        file_value = record.get("file")
        if not isinstance(file_value, str):
            raise CompileCommandError(f"compile_commands.json entry {index} has no string 'file'")
        command = record.get("command")
        arguments = record.get("arguments")
        if isinstance(command, str):
            return cls(file=file_value, command=command)
        if isinstance(arguments, list) and all(isinstance(item, str) for item in arguments):
            return cls(file=file_value, arguments=tuple(arguments))
        raise CompileCommandError(
            f"compile_commands.json entry {index} has neither a string 'command' nor an 'arguments' list"
        )


def load_compile_commands(path: Path) -> List[CompileCommand]:
    if not path.is_file():
        raise CompileCommandError(f"compile_commands.json not found at {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CompileCommandError(f"Failed to parse {path}: {exc}") from exc
    if not isinstance(data, list):
        raise CompileCommandError(f"{path} must contain a JSON array of compile commands")
    return [CompileCommand.from_record(record, index=index) for index, record in enumerate(data)]


def find_reference_command(commands: Sequence[CompileCommand], reference: str) -> CompileCommand:
    for command in commands:
        if command.file.endswith(reference):
            return command
    raise CompileCommandError(f"Compile-command record not found for reference source '{reference}'")


def extract_include_paths(tokens: Sequence[str]) -> List[str]:
    """Collect ``-I<dir>``, ``-I <dir>`` and ``-isystem <dir>`` in command order.

    A flag whose next token is another option (or nothing) has no value and
    is skipped.
    """

    includes: List[str] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token in (INCLUDE_PREFIX, SYSTEM_INCLUDE_FLAG):
            following = tokens[index + 1] if index + 1 < len(tokens) else None
            if following is None or following.startswith("-"):
                index += 1
                continue
            includes.append(following)
            index += 2
            continue
        if token.startswith(INCLUDE_PREFIX):
            includes.append(token[len(INCLUDE_PREFIX):])
        index += 1
    return includes


def introspect_include_paths(database: Path, reference: str) -> List[str]:
    """Include paths used to compile ``reference`` according to ``database``."""

    commands = load_compile_commands(database)
    return extract_include_paths(find_reference_command(commands, reference).tokens())


__all__ = [
    "CompileCommand",
    "CompileCommandError",
    "extract_include_paths",
    "find_reference_command",
    "introspect_include_paths",
    "load_compile_commands",
]
