"""Ordered link directive synthesis for the bridge, engine and dependencies."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Set, Tuple

from .artifacts import LibraryArtifact, LibraryKind, find_library
from .directives import BuildWarning, Directive, LinkLibrary, SearchPath
from .environment import BuildEnvironment

DEFAULT_BOOST_COMPONENTS: Tuple[str, ...] = (
    "filesystem",
    "system",
    "regex",
    "date_time",
    "chrono",
    "thread",
)

COMPRESSION_LIBRARY = "z"
ATOMICS_LIBRARY = "atomic"


@dataclass(frozen=True, slots=True)
class DependencySpec:
    """One native library to link.

    ``name`` doubles as the generic link name used when nothing is found on
    disk; ``search_prefix`` defaults to it. ``library_variable`` is the
    environment variable ``library_file`` was read from.
    """

    name: str
    env_bases: Tuple[str, ...] = ()
    prefer_dynamic: bool = False
    search_prefix: str | None = None
    library_dir: str | None = None
    library_file: str | None = None
    library_variable: str | None = None

    @property
    def prefix(self) -> str:
        return self.search_prefix or self.name


@dataclass(frozen=True, slots=True)
class BuiltLibrary:
    """A static library produced by this build (engine or bridge)."""

    directory: str
    name: str


def package_library_dir(root: str) -> str:
    """Library directory of a package root.

    ``<prefix>/lib/cmake/<package>`` (a CMake package directory) maps to
    ``<prefix>/lib``; anything else maps to ``<root>/lib``.
    """

    path = Path(root)
    parts = path.parts
    if len(parts) >= 3 and parts[-3] == "lib" and parts[-2] == "cmake":
        return str(path.parent.parent)
    return str(path / "lib")


class LinkPlanEmitter:
    def __init__(
        self,
        environment: BuildEnvironment,
        *,
        boost_components: Sequence[str] = DEFAULT_BOOST_COMPONENTS,
        engine: BuiltLibrary | None = None,
        bridge: BuiltLibrary | None = None,
    ) -> None:
        self._environment = environment
        self._boost_components = tuple(boost_components)
        self._engine = engine
        self._bridge = bridge

    def boost_specs(self) -> List[DependencySpec]:
        env = self._environment
        return [
            DependencySpec(
                name=f"boost_{component}",
                env_bases=("Boost_LIBRARY_DIR",),
                prefer_dynamic=env.profile.prefer_dynamic_libs,
                library_dir=env.boost_library_dir,
            )
            for component in self._boost_components
        ]

    def lz4_spec(self) -> DependencySpec:
        env = self._environment
        return DependencySpec(
            name="lz4",
            env_bases=("LZ4_LIBRARY", "LZ4_DIR"),
            prefer_dynamic=env.profile.prefer_dynamic_libs,
            library_dir=package_library_dir(env.lz4_dir) if env.lz4_dir else None,
            library_file=env.lz4_library,
            library_variable=env.lz4_library_variable,
        )

    def protobuf_spec(self) -> DependencySpec:
        env = self._environment
        return DependencySpec(
            name=env.protobuf_component,
            env_bases=("Protobuf_LIBRARY", "Protobuf_LIBRARIES", "Protobuf_DIR"),
            prefer_dynamic=env.profile.prefer_dynamic_libs,
            library_dir=package_library_dir(env.protobuf_dir) if env.protobuf_dir else None,
            library_file=env.protobuf_library,
            library_variable=env.protobuf_library_variable,
        )

    def emit(self) -> List[Directive]:
        directives: List[Directive] = []
        for built in (self._bridge, self._engine):
            if built is not None:
                directives.append(SearchPath(built.directory))
                directives.append(LinkLibrary(built.name, LibraryKind.STATIC))

        directives.extend(self._emit_group(self.boost_specs()))
        directives.extend(self._emit_group([self.lz4_spec()]))
        directives.extend(self._emit_group([self.protobuf_spec()]))

        profile = self._environment.profile
        directives.append(LinkLibrary(profile.cxx_runtime))
        directives.append(LinkLibrary(COMPRESSION_LIBRARY))
        if profile.needs_explicit_atomics:
            directives.append(LinkLibrary(ATOMICS_LIBRARY))
        return directives

    def _emit_group(self, specs: Sequence[DependencySpec]) -> List[Directive]:
        # Specs sharing a directory (the Boost components) search it once.
        searched: Set[str] = set()
        directives: List[Directive] = []
        for spec in specs:
            directives.extend(self._resolve(spec, searched))
        return directives

    @staticmethod
    def _search(directives: List[Directive], searched: Set[str], directory: str) -> None:
        if directory not in searched:
            searched.add(directory)
            directives.append(SearchPath(directory))

    def _resolve(self, spec: DependencySpec, searched: Set[str]) -> List[Directive]:
        directives: List[Directive] = []

        if spec.library_file:
            path = Path(spec.library_file)
            if path.is_file():
                self._search(directives, searched, str(path.parent))
                artifact = LibraryArtifact.from_path(path)
                if artifact is not None:
                    directives.append(LinkLibrary(artifact.stem, artifact.kind))
                else:
                    directives.append(
                        BuildWarning(f"{path.name} is not named lib<name>.a or lib<name>.so; linking '{spec.name}' instead")
                    )
                    directives.append(LinkLibrary(spec.name))
                return directives
            variable = spec.library_variable or spec.env_bases[0]
            directives.append(BuildWarning(f"{variable} set but file not found: {path}"))

        if spec.library_dir:
            self._search(directives, searched, spec.library_dir)
            found = find_library(Path(spec.library_dir), spec.prefix, prefer_dynamic=spec.prefer_dynamic)
            if found is not None:
                directives.append(LinkLibrary(found.stem, found.kind))
                return directives

        directives.append(
            BuildWarning(f"dependency {spec.name} not explicitly located; relying on default linker search path")
        )
        directives.append(LinkLibrary(spec.name))
        return directives


__all__ = [
    "ATOMICS_LIBRARY",
    "BuiltLibrary",
    "COMPRESSION_LIBRARY",
    "DEFAULT_BOOST_COMPONENTS",
    "DependencySpec",
    "LinkPlanEmitter",
    "package_library_dir",
]
