"""Driving the engine's CMake build, the schema compiler and the bridge compile."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence

from .command_runner import CommandRunner
from .compile_commands import introspect_include_paths
from .config_loader import ProjectConfig
from .directives import BuildWarning, include_flags
from .environment import BuildEnvironment
from .link_plan import BuiltLibrary


@dataclass(slots=True)
class BuildStep:
    description: str
    command: Sequence[str]
    cwd: Path
    env: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class NativeBuildOutputs:
    include_paths: List[str]
    engine: BuiltLibrary
    bridge: BuiltLibrary
    warnings: List[BuildWarning] = field(default_factory=list)


def format_cmake_value(value: Any) -> str:
    if isinstance(value, bool):
        return "ON" if value else "OFF"
    return str(value)


def cmake_definition_flag(name: str, value: Any) -> str:
    if isinstance(value, bool):
        return f"{name}:BOOL={format_cmake_value(value)}"
    if isinstance(value, str):
        return f"{name}:STRING={value}"
    return f"{name}={format_cmake_value(value)}"


class NativeBuild:
    """Builds the engine and the bridge under ``out_dir``.

    Layout: CMake binary tree in ``<out_dir>/build`` (engine archive in
    ``build/src``), generated schema code in ``<out_dir>/proto`` and the
    bridge archive in ``<out_dir>/bridge``.
    """

    def __init__(
        self,
        *,
        config: ProjectConfig,
        environment: BuildEnvironment,
        out_dir: Path,
        command_runner: CommandRunner,
    ) -> None:
        self._config = config
        self._environment = environment
        self._out_dir = out_dir
        self._command_runner = command_runner

    @property
    def build_dir(self) -> Path:
        return self._out_dir / "build"

    @property
    def compile_commands(self) -> Path:
        return self.build_dir / "compile_commands.json"

    @property
    def engine_library_dir(self) -> Path:
        return self.build_dir / "src"

    @property
    def proto_out_dir(self) -> Path:
        return self._out_dir / "proto"

    @property
    def bridge_dir(self) -> Path:
        return self._out_dir / "bridge"

    def cmake_definitions(self) -> Dict[str, Any]:
        env = self._environment
        definitions: Dict[str, Any] = {
            "CMAKE_BUILD_TYPE": env.build_type,
            "CMAKE_EXPORT_COMPILE_COMMANDS": True,
        }
        definitions.update(self._config.engine.options)

        optional = {
            "CMAKE_PREFIX_PATH": ":".join(env.cmake_prefix_path) or None,
            "Boost_ROOT": env.boost_root,
            "Boost_INCLUDE_DIR": env.boost_include_dir,
            "Boost_LIBRARY_DIR": env.boost_library_dir,
            "Protobuf_INCLUDE_DIR": env.protobuf_include_dir,
            "Protobuf_LIBRARY": env.protobuf_library,
            "Protobuf_PROTOC_EXECUTABLE": env.protoc,
            "PROTOBUF_PROTOC_EXECUTABLE": env.protoc,
            "CMAKE_REQUIRED_INCLUDES": env.lz4_include_dir,
        }
        for key, value in optional.items():
            if value:
                definitions[key] = value
        if env.lz4_include_dir:
            definitions["CMAKE_C_FLAGS"] = f"-I{env.lz4_include_dir}"
            definitions["CMAKE_CXX_FLAGS"] = f"-I{env.lz4_include_dir}"
        return definitions

    def engine_steps(self) -> List[BuildStep]:
        source_dir = self._config.resolve(self._config.engine.source_dir)
        configure: List[str] = ["cmake"]
        for key, value in self.cmake_definitions().items():
            configure.extend(["-D", cmake_definition_flag(key, value)])
        configure.extend(["-B", str(self.build_dir), "-S", str(source_dir)])
        build = ["cmake", "--build", str(self.build_dir), "--target", self._config.engine.cmake_target]
        return [
            BuildStep(description="Configure engine", command=configure, cwd=self._config.root),
            BuildStep(description="Build engine", command=build, cwd=self._config.root),
        ]

    def proto_step(self) -> BuildStep | None:
        proto_dir = self._config.resolve(self._config.proto.directory)
        if not proto_dir.is_dir():
            raise FileNotFoundError(f"Schema directory not found: {proto_dir}")
        schemas = sorted(path for path in proto_dir.iterdir() if path.suffix == ".proto")
        if not schemas:
            return None
        protoc = self._environment.protoc or "protoc"
        command = [
            protoc,
            f"--proto_path={proto_dir}",
            f"{self._config.proto.output_flag}={self.proto_out_dir}",
            *(str(path) for path in schemas),
        ]
        return BuildStep(description="Compile schemas", command=command, cwd=self._config.root)

    def bridge_steps(self, include_paths: Sequence[str]) -> List[BuildStep]:
        bridge = self._config.bridge
        root = self._config.root
        steps: List[BuildStep] = []

        sources: List[Path] = []
        for entry in bridge.entry_points:
            entry_path = self._config.resolve(entry)
            generated = self.bridge_dir / f"{entry_path.name}.cc"
            steps.append(
                BuildStep(
                    description=f"Generate bridge for {entry}",
                    command=[bridge.generator, str(entry_path), "-o", str(generated)],
                    cwd=root,
                )
            )
            sources.append(generated)
        sources.extend(self._config.resolve(source) for source in bridge.sources)

        compiler = self._environment.cxx or "c++"
        flags = [f"-std={bridge.std}", "-fPIC", *include_flags(include_paths)]
        flags.extend(f"-D{define}" for define in bridge.defines)
        objects: List[str] = []
        for source in sources:
            obj = self.bridge_dir / f"{source.name}.o"
            steps.append(
                BuildStep(
                    description=f"Compile {source.name}",
                    command=[compiler, *flags, "-c", str(source), "-o", str(obj)],
                    cwd=root,
                )
            )
            objects.append(str(obj))

        archive = self.bridge_dir / f"lib{bridge.library}.a"
        steps.append(
            BuildStep(
                description="Archive bridge",
                command=[self._environment.ar or "ar", "rcs", str(archive), *objects],
                cwd=root,
            )
        )
        return steps

    def execute(self, steps: Sequence[BuildStep], *, dry_run: bool) -> None:
        """Run ``steps`` in order; the first failing step raises ``CommandError``."""

        if dry_run:
            for step in steps:
                self._command_runner.run(step.command, cwd=step.cwd, env=step.env, check=False, note=step.description)
            return

        for directory in (self.build_dir, self.proto_out_dir, self.bridge_dir):
            directory.mkdir(parents=True, exist_ok=True)
        for step in steps:
            self._command_runner.run(step.command, cwd=step.cwd, env=step.env, note=step.description, stream=True)

    def remove_cleanup_paths(self) -> None:
        for entry in self._config.engine.cleanup:
            self._config.resolve(entry).unlink(missing_ok=True)

    def run(self, *, dry_run: bool = False) -> NativeBuildOutputs:
        """Engine build, include introspection, schemas, bridge; in that order."""

        warnings: List[BuildWarning] = []
        self.execute(self.engine_steps(), dry_run=dry_run)

        include_paths: List[str] = []
        if dry_run:
            if self.compile_commands.is_file():
                include_paths = introspect_include_paths(self.compile_commands, self._config.engine.reference_source)
            else:
                warnings.append(
                    BuildWarning(f"{self.compile_commands} does not exist yet; bridge include paths omitted in dry run")
                )
        else:
            self.remove_cleanup_paths()
            include_paths = introspect_include_paths(self.compile_commands, self._config.engine.reference_source)

        proto = self.proto_step()
        if proto is not None:
            self.execute([proto], dry_run=dry_run)
        self.execute(self.bridge_steps(include_paths), dry_run=dry_run)

        return NativeBuildOutputs(
            include_paths=include_paths,
            engine=BuiltLibrary(directory=str(self.engine_library_dir), name=self._config.engine.library),
            bridge=BuiltLibrary(directory=str(self.bridge_dir), name=self._config.bridge.library),
            warnings=warnings,
        )


__all__ = [
    "BuildStep",
    "NativeBuild",
    "NativeBuildOutputs",
    "cmake_definition_flag",
    "format_cmake_value",
]
