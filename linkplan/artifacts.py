"""Discovery of compiled library artifacts on disk."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List


class LibraryKind(str, Enum):
    STATIC = "static"
    DYNAMIC = "dylib"


_SUFFIX_KINDS = {
    ".a": LibraryKind.STATIC,
    ".so": LibraryKind.DYNAMIC,
}


@dataclass(frozen=True, slots=True)
class LibraryArtifact:
    path: Path
    kind: LibraryKind
    stem: str

    @classmethod
    def from_path(cls, path: Path) -> "LibraryArtifact | None":
        kind = library_kind(path)
        stem = library_stem(path)
        if kind is None or stem is None:
            return None
        return cls(path=path, kind=kind, stem=stem)


def library_kind(path: Path) -> LibraryKind | None:
    return _SUFFIX_KINDS.get(path.suffix)


def library_stem(path: Path) -> str | None:
    """Return the link name of ``lib<stem>.a`` / ``lib<stem>.so``, else ``None``."""

    name = path.name
    if not name.startswith("lib"):
        return None
    for suffix in _SUFFIX_KINDS:
        if name.endswith(suffix):
            stem = name[len("lib"):-len(suffix)]
            return stem or None
    return None


def _list_directory(directory: Path) -> List[Path]:
    try:
        return sorted(directory.iterdir(), key=lambda entry: entry.name)
    except OSError:
        return []


def find_library(directory: Path, prefix: str, *, prefer_dynamic: bool = False) -> LibraryArtifact | None:
    """Locate ``lib<prefix>*`` in ``directory``.

    Static archives win unless ``prefer_dynamic`` is set, in which case shared
    objects win. Within one kind the exact ``lib<prefix>`` name is taken before
    decorated variants such as ``lib<prefix>-mt``. Unreadable directories
    behave like empty ones.
    """

    lead = f"lib{prefix}"
    found: Dict[LibraryKind, Path] = {}
    for entry in _list_directory(directory):
        if not entry.name.startswith(lead):
            continue
        kind = library_kind(entry)
        if kind is None:
            continue
        exact = entry.name == f"{lead}{entry.suffix}"
        if kind not in found or exact:
            found[kind] = entry

    order = (LibraryKind.DYNAMIC, LibraryKind.STATIC) if prefer_dynamic else (LibraryKind.STATIC, LibraryKind.DYNAMIC)
    for kind in order:
        path = found.get(kind)
        if path is None:
            continue
        artifact = LibraryArtifact.from_path(path)
        if artifact is not None:
            return artifact
    return None


__all__ = ["LibraryArtifact", "LibraryKind", "find_library", "library_kind", "library_stem"]
