"""Layered environment lookup and the resolved build configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Tuple
import os

from .directives import RerunIfChanged, RerunIfEnvChanged
from .targets import PlatformFamily, TargetProfile, classify_target, normalize_triple, platform_family


@dataclass(frozen=True, slots=True)
class BuildOption:
    name: str
    description: str
    triple_specific: bool = True


OPTIONS: Tuple[BuildOption, ...] = (
    BuildOption("Boost_ROOT", "Boost installation prefix, appended to CMAKE_PREFIX_PATH"),
    BuildOption("Boost_INCLUDE_DIR", "Boost header directory passed to CMake"),
    BuildOption("Boost_LIBRARY_DIR", "Directory searched for the Boost component libraries"),
    BuildOption("Protobuf_DIR", "Protobuf package root or CMake package directory"),
    BuildOption("Protobuf_INCLUDE_DIR", "Protobuf header directory passed to CMake"),
    BuildOption("Protobuf_LIBRARY", "Explicit Protobuf library file"),
    BuildOption("Protobuf_LIBRARIES", "Fallback spelling of Protobuf_LIBRARY"),
    BuildOption("Protobuf_PROTOC_EXECUTABLE", "Host protoc used by CMake and the schema step", triple_specific=False),
    BuildOption("PROTOC", "Fallback spelling of Protobuf_PROTOC_EXECUTABLE", triple_specific=False),
    BuildOption("PROTOBUF_COMPONENT", "Protobuf link name (default protobuf-lite on Android, else protobuf)"),
    BuildOption("LZ4_DIR", "LZ4 package root containing include/ and lib/"),
    BuildOption("LZ4_INCLUDE_DIR", "LZ4 header directory (default <LZ4_DIR>/include)"),
    BuildOption("LZ4_LIBRARY", "Explicit LZ4 library file"),
    BuildOption("CMAKE_PREFIX_PATH", "Colon separated CMake search prefixes"),
    BuildOption("CXX_STDLIB", "C++ runtime link name override"),
    BuildOption("ANDROID_PREFER_DYNAMIC", "Set to 1 to prefer .so over .a on Android targets"),
    BuildOption("PREFER_DYNAMIC_LIBS", "Set to 1 to prefer .so over .a on any target"),
    BuildOption("CXX", "C++ compiler for the bridge compile step"),
    BuildOption("AR", "Archiver for the bridge library"),
    BuildOption("PROFILE", "Build profile reported by the driver (debug/release)", triple_specific=False),
    BuildOption("DEBUG", "Whether debug info is requested for release builds", triple_specific=False),
)
"""Every environment variable the build reads, in documentation order."""

_OPTIONS_BY_NAME = {option.name: option for option in OPTIONS}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def env_candidates(base: str, triple_us: str) -> List[str]:
    """Triple specific name first, then the bare name."""

    if not triple_us:
        return [base]
    return [f"{base}_{triple_us}", base]


def is_truthy(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUE_VALUES


class EnvironmentResolver:
    """Reads options from a snapshot of the process environment."""

    def __init__(self, triple_us: str, env: Mapping[str, str] | None = None) -> None:
        self._triple_us = triple_us
        self._env = dict(env) if env is not None else dict(os.environ)
        self._watched: Dict[str, None] = {}

    @property
    def triple_us(self) -> str:
        return self._triple_us

    def candidates(self, base: str) -> List[str]:
        option = _OPTIONS_BY_NAME.get(base)
        if option is not None and not option.triple_specific:
            return [base]
        return env_candidates(base, self._triple_us)

    def first_named(self, *bases: str) -> Tuple[str, str] | None:
        """``(variable, value)`` for the first set, non-empty candidate."""

        for base in bases:
            for name in self.candidates(base):
                self._watched.setdefault(name, None)
                value = self._env.get(name)
                if value:
                    return name, value
        return None

    def first(self, *bases: str) -> str | None:
        found = self.first_named(*bases)
        return found[1] if found else None

    def lookup(self, option_name: str) -> str | None:
        """Value of a declared option; undeclared names raise ``KeyError``."""

        if option_name not in _OPTIONS_BY_NAME:
            raise KeyError(f"Undeclared build option: {option_name}")
        return self.first(option_name)

    def flag(self, base: str) -> bool:
        return is_truthy(self.lookup(base))

    def watched_variables(self) -> List[str]:
        return list(self._watched)

    def declared_variables(self) -> List[str]:
        names: Dict[str, None] = {}
        for option in OPTIONS:
            for name in self.candidates(option.name):
                names.setdefault(name, None)
        return list(names)


def rerun_directives(
    resolver: EnvironmentResolver,
    paths: Iterable[str | Path] = (),
) -> Iterator[RerunIfChanged | RerunIfEnvChanged]:
    """Rebuild triggers for watched inputs and every declared variable."""

    for path in paths:
        yield RerunIfChanged(str(path))
    variables: Dict[str, None] = dict.fromkeys(resolver.declared_variables())
    for name in resolver.watched_variables():
        variables.setdefault(name, None)
    for name in variables:
        yield RerunIfEnvChanged(name)


def _split_prefix_path(value: str | None) -> List[str]:
    if not value:
        return []
    return [part for part in value.split(":") if part]


@dataclass(frozen=True, slots=True)
class BuildEnvironment:
    """Immutable view of every option, resolved once per invocation."""

    profile: TargetProfile
    boost_root: str | None = None
    boost_include_dir: str | None = None
    boost_library_dir: str | None = None
    protobuf_dir: str | None = None
    protobuf_include_dir: str | None = None
    protobuf_library: str | None = None
    protobuf_library_variable: str | None = None
    protoc: str | None = None
    protobuf_component: str = "protobuf"
    lz4_dir: str | None = None
    lz4_include_dir: str | None = None
    lz4_library: str | None = None
    lz4_library_variable: str | None = None
    cmake_prefix_path: Tuple[str, ...] = field(default_factory=tuple)
    cxx: str | None = None
    ar: str | None = None
    build_profile: str | None = None
    debug_info: bool = False

    @property
    def build_type(self) -> str:
        if self.build_profile == "debug":
            return "Debug"
        if self.build_profile == "release" and self.debug_info:
            return "RelWithDebInfo"
        return "Release"

    def describe(self) -> List[Tuple[str, str]]:
        rows: List[Tuple[str, str]] = [
            ("target", self.profile.triple),
            ("family", self.profile.family.value),
            ("cxx_runtime", self.profile.cxx_runtime),
            ("prefer_dynamic_libs", str(self.profile.prefer_dynamic_libs)),
            ("needs_explicit_atomics", str(self.profile.needs_explicit_atomics)),
            ("build_type", self.build_type),
        ]
        values = {
            "boost_root": self.boost_root,
            "boost_include_dir": self.boost_include_dir,
            "boost_library_dir": self.boost_library_dir,
            "protobuf_dir": self.protobuf_dir,
            "protobuf_include_dir": self.protobuf_include_dir,
            "protobuf_library": self.protobuf_library,
            "protobuf_component": self.protobuf_component,
            "protoc": self.protoc,
            "lz4_dir": self.lz4_dir,
            "lz4_include_dir": self.lz4_include_dir,
            "lz4_library": self.lz4_library,
            "cmake_prefix_path": ":".join(self.cmake_prefix_path) or None,
        }
        rows.extend((key, value if value is not None else "<unset>") for key, value in values.items())
        return rows


def load_build_environment(
    target: str,
    env: Mapping[str, str] | None = None,
) -> tuple[BuildEnvironment, EnvironmentResolver]:
    """Classify ``target`` and resolve every declared option for it."""

    resolver = EnvironmentResolver(normalize_triple(target), env)

    # ANDROID_PREFER_DYNAMIC is only honoured for Android targets.
    prefer_dynamic = resolver.flag("PREFER_DYNAMIC_LIBS")
    if platform_family(target) is PlatformFamily.ANDROID:
        prefer_dynamic = resolver.flag("ANDROID_PREFER_DYNAMIC") or prefer_dynamic
    profile = classify_target(
        target,
        cxx_runtime=resolver.lookup("CXX_STDLIB"),
        prefer_dynamic=prefer_dynamic,
    )

    boost_root = resolver.lookup("Boost_ROOT")
    protobuf_dir = resolver.lookup("Protobuf_DIR")
    lz4_dir = resolver.lookup("LZ4_DIR")
    lz4_include_dir = resolver.lookup("LZ4_INCLUDE_DIR")
    if lz4_include_dir is None and lz4_dir:
        lz4_include_dir = f"{lz4_dir}/include"

    prefix_path = _split_prefix_path(resolver.lookup("CMAKE_PREFIX_PATH"))
    for extra in (boost_root, protobuf_dir):
        if extra:
            prefix_path.append(extra)

    default_component = "protobuf-lite" if profile.is_android else "protobuf"
    protobuf_library = resolver.first_named("Protobuf_LIBRARY", "Protobuf_LIBRARIES")
    lz4_library = resolver.first_named("LZ4_LIBRARY")

    environment = BuildEnvironment(
        profile=profile,
        boost_root=boost_root,
        boost_include_dir=resolver.lookup("Boost_INCLUDE_DIR"),
        boost_library_dir=resolver.lookup("Boost_LIBRARY_DIR"),
        protobuf_dir=protobuf_dir,
        protobuf_include_dir=resolver.lookup("Protobuf_INCLUDE_DIR"),
        protobuf_library=protobuf_library[1] if protobuf_library else None,
        protobuf_library_variable=protobuf_library[0] if protobuf_library else None,
        protoc=resolver.first("Protobuf_PROTOC_EXECUTABLE", "PROTOC"),
        protobuf_component=resolver.lookup("PROTOBUF_COMPONENT") or default_component,
        lz4_dir=lz4_dir,
        lz4_include_dir=lz4_include_dir,
        lz4_library=lz4_library[1] if lz4_library else None,
        lz4_library_variable=lz4_library[0] if lz4_library else None,
        cmake_prefix_path=tuple(prefix_path),
        cxx=resolver.lookup("CXX"),
        ar=resolver.lookup("AR"),
        build_profile=resolver.lookup("PROFILE"),
        debug_info=resolver.flag("DEBUG"),
    )
    return environment, resolver


__all__ = [
    "BuildEnvironment",
    "BuildOption",
    "EnvironmentResolver",
    "OPTIONS",
    "env_candidates",
    "is_truthy",
    "load_build_environment",
    "rerun_directives",
]
