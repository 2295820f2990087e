"""Directive records and their renderings for the toolchain driver."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, TextIO, Union

from .artifacts import LibraryKind


@dataclass(frozen=True, slots=True)
class SearchPath:
    directory: str


@dataclass(frozen=True, slots=True)
class LinkLibrary:
    name: str
    kind: LibraryKind | None = None


@dataclass(frozen=True, slots=True)
class RerunIfChanged:
    path: str


@dataclass(frozen=True, slots=True)
class RerunIfEnvChanged:
    variable: str


@dataclass(frozen=True, slots=True)
class BuildWarning:
    message: str


Directive = Union[SearchPath, LinkLibrary, RerunIfChanged, RerunIfEnvChanged, BuildWarning]


class DirectiveFormat(str, Enum):
    CARGO = "cargo"
    FLAGS = "flags"


def render_cargo(directive: Directive) -> str:
    """Render ``directive`` as a Cargo build-script instruction line."""

    if isinstance(directive, SearchPath):
        return f"cargo:rustc-link-search=native={directive.directory}"
    if isinstance(directive, LinkLibrary):
        if directive.kind is LibraryKind.STATIC:
            return f"cargo:rustc-link-lib=static={directive.name}"
        return f"cargo:rustc-link-lib={directive.name}"
    if isinstance(directive, RerunIfChanged):
        return f"cargo:rerun-if-changed={directive.path}"
    if isinstance(directive, RerunIfEnvChanged):
        return f"cargo:rerun-if-env-changed={directive.variable}"
    if isinstance(directive, BuildWarning):
        return f"cargo:warning={directive.message}"
    raise TypeError(f"Unsupported directive: {directive!r}")


def render_flags(directive: Directive) -> List[str]:
    """Render ``directive`` as compiler-driver link flags.

    Rerun triggers and warnings have no flag form and render as an empty list.
    """

    if isinstance(directive, SearchPath):
        return [f"-L{directive.directory}"]
    if isinstance(directive, LinkLibrary):
        if directive.kind is LibraryKind.STATIC:
            return ["-Wl,-Bstatic", f"-l{directive.name}", "-Wl,-Bdynamic"]
        return [f"-l{directive.name}"]
    return []


def include_flags(include_paths: Iterable[str]) -> List[str]:
    return [f"-I{path}" for path in include_paths]


def write_directives(
    directives: Iterable[Directive],
    *,
    output_format: DirectiveFormat,
    stdout: TextIO,
    stderr: TextIO,
) -> None:
    if output_format is DirectiveFormat.CARGO:
        for directive in directives:
            print(render_cargo(directive), file=stdout)
        return

    flags: List[str] = []
    for directive in directives:
        if isinstance(directive, BuildWarning):
            print(f"Warning: {directive.message}", file=stderr)
            continue
        flags.extend(render_flags(directive))
    if flags:
        print(" ".join(flags), file=stdout)


__all__ = [
    "BuildWarning",
    "Directive",
    "DirectiveFormat",
    "LinkLibrary",
    "RerunIfChanged",
    "RerunIfEnvChanged",
    "SearchPath",
    "include_flags",
    "render_cargo",
    "render_flags",
    "write_directives",
]
