"""Loading of the ``linkplan`` project configuration file."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence
import json
import tomllib

import yaml


ConfigLoader = Callable[[Any], Any]

FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": tomllib.load,
    ".json": json.load,
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
}
"""Mapping of file suffixes to loader callables."""

CONFIG_STEM = "linkplan"

ENGINE_DEFAULT_OPTIONS: Dict[str, Any] = {
    "ENABLE_TOOLS": False,
    "ENABLE_DATA_TOOLS": False,
    "ENABLE_SERVICES": False,
    "ENABLE_HTTP": False,
    "ENABLE_PYTHON_BINDINGS": False,
    "ENABLE_TESTS": False,
    "ENABLE_GDAL": False,
    "ENABLE_SINGLE_FILES_WERROR": False,
    "ENABLE_THREAD_SAFE_TILE_REF_COUNT": True,
    "LOGGING_LEVEL": "WARN",
    "Boost_NO_SYSTEM_PATHS": True,
}


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Load and decode a configuration mapping from ``path``."""

    suffix = path.suffix.lower()
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        supported = ", ".join(sorted(FILE_LOADERS))
        raise ValueError(f"Unsupported configuration file extension: {suffix}. Supported: {supported}")

    if suffix == ".toml":
        with path.open("rb") as handle:
            data = loader(handle)
    else:
        with path.open("r", encoding="utf-8") as handle:
            data = loader(handle)

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Configuration file '{path}' must contain a mapping at the root")
    return data


def find_config_file(root: Path, stem: str = CONFIG_STEM) -> Path | None:
    """Return ``<root>/<stem>.<ext>`` for the single supported format present."""

    matches = [root / f"{stem}{suffix}" for suffix in FILE_LOADERS if (root / f"{stem}{suffix}").is_file()]
    if len(matches) > 1:
        names = ", ".join(f"'{path.name}'" for path in matches)
        raise ValueError(f"Multiple configuration files found for '{stem}': {names}. Only one format is allowed.")
    return matches[0] if matches else None


def merge_mappings(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep merge two mapping objects."""

    result: Dict[str, Any] = dict(base)
    for key, value in overlay.items():
        existing = result.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            result[key] = merge_mappings(existing, value)
        else:
            result[key] = value
    return result


def normalize_string_list(value: Any, *, field_name: str) -> List[str]:
    """Coerce ``value`` into a list of trimmed strings."""

    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        return [text] if text else []
    if isinstance(value, Sequence):
        items: List[str] = []
        for item in value:
            if not isinstance(item, str):
                raise TypeError(f"{field_name} entries must be strings")
            text = item.strip()
            if text:
                items.append(text)
        return items
    raise TypeError(f"{field_name} must be a string or sequence of strings")


def _section(data: Mapping[str, Any], name: str, allowed: set[str]) -> Mapping[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, Mapping):
        raise TypeError(f"[{name}] must be a table")
    unknown = {str(key) for key in section.keys() if str(key) not in allowed}
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ValueError(f"[{name}] contains unknown keys: {joined}")
    return section


def _string(section: Mapping[str, Any], key: str, default: str, *, field_name: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise TypeError(f"{field_name} must be a non-empty string")
    return value.strip()


@dataclass(slots=True)
class EngineConfig:
    source_dir: str = "valhalla"
    cmake_target: str = "valhalla"
    library: str = "valhalla"
    reference_source: str = "config.cc"
    options: Dict[str, Any] = field(default_factory=lambda: dict(ENGINE_DEFAULT_OPTIONS))
    cleanup: List[str] = field(default_factory=lambda: ["valhalla/third_party/tz/leapseconds"])

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EngineConfig":
        section = _section(
            data,
            "engine",
            {"source_dir", "cmake_target", "library", "reference_source", "options", "cleanup"},
        )
        defaults = cls()
        options_section = section.get("options", {})
        if not isinstance(options_section, Mapping):
            raise TypeError("engine.options must be a table")
        cleanup = defaults.cleanup
        if "cleanup" in section:
            cleanup = normalize_string_list(section.get("cleanup"), field_name="engine.cleanup")
        return cls(
            source_dir=_string(section, "source_dir", defaults.source_dir, field_name="engine.source_dir"),
            cmake_target=_string(section, "cmake_target", defaults.cmake_target, field_name="engine.cmake_target"),
            library=_string(section, "library", defaults.library, field_name="engine.library"),
            reference_source=_string(
                section, "reference_source", defaults.reference_source, field_name="engine.reference_source"
            ),
            options=merge_mappings(defaults.options, options_section),
            cleanup=cleanup,
        )


@dataclass(slots=True)
class ProtoConfig:
    directory: str = "valhalla/proto"
    output_flag: str = "--cpp_out"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProtoConfig":
        section = _section(data, "proto", {"directory", "output_flag"})
        defaults = cls()
        return cls(
            directory=_string(section, "directory", defaults.directory, field_name="proto.directory"),
            output_flag=_string(section, "output_flag", defaults.output_flag, field_name="proto.output_flag"),
        )


@dataclass(slots=True)
class BridgeConfig:
    generator: str = "cxxbridge"
    entry_points: List[str] = field(default_factory=lambda: ["src/lib.rs", "src/config.rs", "src/actor.rs"])
    sources: List[str] = field(default_factory=lambda: ["src/libvalhalla.cpp", "valhalla/src/baldr/datetime.cc"])
    std: str = "c++17"
    defines: List[str] = field(default_factory=lambda: ["ENABLE_THREAD_SAFE_TILE_REF_COUNT"])
    library: str = "valhalla-cxxbridge"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BridgeConfig":
        section = _section(data, "bridge", {"generator", "entry_points", "sources", "std", "defines", "library"})
        defaults = cls()
        lists: Dict[str, List[str]] = {}
        for key in ("entry_points", "sources", "defines"):
            if key in section:
                lists[key] = normalize_string_list(section[key], field_name=f"bridge.{key}")
            else:
                lists[key] = list(getattr(defaults, key))
        return cls(
            generator=_string(section, "generator", defaults.generator, field_name="bridge.generator"),
            std=_string(section, "std", defaults.std, field_name="bridge.std"),
            library=_string(section, "library", defaults.library, field_name="bridge.library"),
            **lists,
        )


@dataclass(slots=True)
class ProjectConfig:
    root: Path
    engine: EngineConfig = field(default_factory=EngineConfig)
    boost_components: List[str] = field(
        default_factory=lambda: ["filesystem", "system", "regex", "date_time", "chrono", "thread"]
    )
    proto: ProtoConfig = field(default_factory=ProtoConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    watch: List[str] = field(
        default_factory=lambda: [
            "src/actor.hpp",
            "src/config.hpp",
            "src/libvalhalla.hpp",
            "src/libvalhalla.cpp",
            "src/lib.rs",
            "valhalla",
        ]
    )
    source: Path | None = None

    @classmethod
    def from_mapping(cls, root: Path, data: Mapping[str, Any], *, source: Path | None = None) -> "ProjectConfig":
        allowed = {"engine", "boost", "proto", "bridge", "watch"}
        unknown = {str(key) for key in data.keys() if str(key) not in allowed}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ValueError(f"Configuration contains unknown sections: {joined}")

        defaults = cls(root=root)
        boost = _section(data, "boost", {"components"})
        watch = _section(data, "watch", {"paths"})
        components = defaults.boost_components
        if "components" in boost:
            components = normalize_string_list(boost["components"], field_name="boost.components")
        watch_paths = defaults.watch
        if "paths" in watch:
            watch_paths = normalize_string_list(watch["paths"], field_name="watch.paths")

        return cls(
            root=root,
            engine=EngineConfig.from_mapping(data),
            boost_components=components,
            proto=ProtoConfig.from_mapping(data),
            bridge=BridgeConfig.from_mapping(data),
            watch=watch_paths,
            source=source,
        )

    @classmethod
    def load(cls, root: Path, path: Path | None = None) -> "ProjectConfig":
        """Load ``path`` (or the ``linkplan.*`` file in ``root``); defaults when absent."""

        config_path = path if path is not None else find_config_file(root)
        if config_path is None:
            return cls(root=root)
        if not config_path.is_file():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        return cls.from_mapping(root, load_config_file(config_path), source=config_path)

    def resolve(self, relative: str) -> Path:
        path = Path(relative)
        return path if path.is_absolute() else self.root / path

    def watched_paths(self) -> List[Path]:
        paths = [self.resolve(entry) for entry in self.watch]
        if self.source is not None:
            paths.append(self.source)
        return paths


__all__ = [
    "BridgeConfig",
    "CONFIG_STEM",
    "ENGINE_DEFAULT_OPTIONS",
    "EngineConfig",
    "FILE_LOADERS",
    "ProjectConfig",
    "ProtoConfig",
    "find_config_file",
    "load_config_file",
    "merge_mappings",
    "normalize_string_list",
]
