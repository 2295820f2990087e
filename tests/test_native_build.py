from __future__ import annotations

from pathlib import Path
from typing import Mapping, Sequence
import json
import tempfile
import unittest

from linkplan.command_runner import CommandError, CommandResult, RecordingCommandRunner
from linkplan.compile_commands import CompileCommandError
from linkplan.config_loader import ProjectConfig
from linkplan.directives import BuildWarning
from linkplan.environment import load_build_environment
from linkplan.native_build import NativeBuild, cmake_definition_flag, format_cmake_value

DESKTOP = "x86_64-unknown-linux-gnu"


class DatabaseWritingRunner(RecordingCommandRunner):
    """Records commands and writes the compile database when CMake configures."""

    def __init__(self, database: Path, reference: str) -> None:
        super().__init__()
        self._database = database
        self._reference = reference

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
        result = super().run(command, cwd=cwd, env=env, check=check, note=note, stream=stream)
        if note == "Configure engine":
            record = {"file": f"/src/{self._reference}", "command": f"c++ -I/eng/include -isystem /eng/third -c {self._reference}"}
            self._database.write_text(json.dumps([record]), encoding="utf-8")
        return result


class FailingRunner(RecordingCommandRunner):
    """Records commands and fails the step whose note is ``failing_note``."""

    def __init__(self, failing_note: str) -> None:
        super().__init__()
        self._failing_note = failing_note

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
        result = super().run(command, cwd=cwd, env=env, check=check, note=note, stream=stream)
        if note == self._failing_note:
            raise CommandError(CommandResult(command=list(command), returncode=2, note=note))
        return result


class CMakeFlagTests(unittest.TestCase):
    def test_definition_flags(self) -> None:
        self.assertEqual(cmake_definition_flag("ENABLE_TESTS", False), "ENABLE_TESTS:BOOL=OFF")
        self.assertEqual(cmake_definition_flag("LOGGING_LEVEL", "WARN"), "LOGGING_LEVEL:STRING=WARN")
        self.assertEqual(cmake_definition_flag("JOBS", 4), "JOBS=4")
        self.assertEqual(format_cmake_value(True), "ON")


class NativeBuildTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.out_dir = self.root / "out"
        proto_dir = self.root / "valhalla" / "proto"
        proto_dir.mkdir(parents=True)
        for name in ("tripcommon.proto", "api.proto", "README.md"):
            (proto_dir / name).write_text("", encoding="utf-8")
        self.config = ProjectConfig(root=self.root)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _build(self, runner: RecordingCommandRunner, env: Mapping[str, str] | None = None) -> NativeBuild:
        environment, _ = load_build_environment(DESKTOP, dict(env or {}))
        return NativeBuild(config=self.config, environment=environment, out_dir=self.out_dir, command_runner=runner)

    def test_cmake_definitions(self) -> None:
        build = self._build(
            RecordingCommandRunner(),
            {"Boost_ROOT": "/boost", "LZ4_DIR": "/lz4", "PROTOC": "/bin/protoc", "PROFILE": "debug"},
        )
        definitions = build.cmake_definitions()
        self.assertEqual(definitions["CMAKE_BUILD_TYPE"], "Debug")
        self.assertIs(definitions["CMAKE_EXPORT_COMPILE_COMMANDS"], True)
        self.assertIs(definitions["ENABLE_TESTS"], False)
        self.assertEqual(definitions["CMAKE_PREFIX_PATH"], "/boost")
        self.assertEqual(definitions["Protobuf_PROTOC_EXECUTABLE"], "/bin/protoc")
        self.assertEqual(definitions["CMAKE_CXX_FLAGS"], "-I/lz4/include")
        self.assertNotIn("Protobuf_LIBRARY", definitions)

    def test_engine_steps(self) -> None:
        configure, build = self._build(RecordingCommandRunner()).engine_steps()
        self.assertEqual(configure.command[0], "cmake")
        self.assertIn("CMAKE_EXPORT_COMPILE_COMMANDS:BOOL=ON", configure.command)
        self.assertEqual(configure.command[-4:], ["-B", str(self.out_dir / "build"), "-S", str(self.root / "valhalla")])
        self.assertEqual(build.command, ["cmake", "--build", str(self.out_dir / "build"), "--target", "valhalla"])

    def test_proto_step_compiles_sorted_schemas(self) -> None:
        step = self._build(RecordingCommandRunner()).proto_step()
        assert step is not None
        proto_dir = self.root / "valhalla" / "proto"
        self.assertEqual(
            step.command,
            [
                "protoc",
                f"--proto_path={proto_dir}",
                f"--cpp_out={self.out_dir / 'proto'}",
                str(proto_dir / "api.proto"),
                str(proto_dir / "tripcommon.proto"),
            ],
        )

    def test_proto_step_without_schemas(self) -> None:
        for path in (self.root / "valhalla" / "proto").glob("*.proto"):
            path.unlink()
        self.assertIsNone(self._build(RecordingCommandRunner()).proto_step())

    def test_missing_schema_directory_is_an_error(self) -> None:
        self.config.proto.directory = "absent"
        with self.assertRaises(FileNotFoundError):
            self._build(RecordingCommandRunner()).proto_step()

    def test_bridge_steps(self) -> None:
        steps = self._build(RecordingCommandRunner(), {"CXX": "clang++"}).bridge_steps(["/inc/a", "/inc/b"])
        descriptions = [step.description for step in steps]
        self.assertEqual(descriptions[:3], [f"Generate bridge for {entry}" for entry in self.config.bridge.entry_points])
        self.assertEqual(descriptions[-1], "Archive bridge")
        compile_step = steps[3]
        self.assertEqual(compile_step.command[0], "clang++")
        self.assertIn("-I/inc/a", compile_step.command)
        self.assertIn("-DENABLE_THREAD_SAFE_TILE_REF_COUNT", compile_step.command)
        archive = steps[-1].command
        self.assertEqual(archive[:3], ["ar", "rcs", str(self.out_dir / "bridge" / "libvalhalla-cxxbridge.a")])
        self.assertEqual(len(archive) - 3, 5)

    def test_dry_run_without_database(self) -> None:
        runner = RecordingCommandRunner()
        outputs = self._build(runner).run(dry_run=True)
        self.assertEqual(outputs.include_paths, [])
        self.assertEqual(len(outputs.warnings), 1)
        self.assertIsInstance(outputs.warnings[0], BuildWarning)
        self.assertFalse(self.out_dir.exists())
        notes = [record.note for record in runner.commands]
        self.assertEqual(notes[:3], ["Configure engine", "Build engine", "Compile schemas"])
        self.assertTrue(all(line.startswith("[dry-run] ") for line in runner.iter_formatted()))

    def test_run_stops_when_compile_database_is_missing(self) -> None:
        runner = RecordingCommandRunner()
        with self.assertRaises(CompileCommandError) as ctx:
            self._build(runner).run()
        self.assertIn("compile_commands.json not found", str(ctx.exception))
        self.assertEqual([record.note for record in runner.commands], ["Configure engine", "Build engine"])

    def test_run_stops_at_failing_engine_step(self) -> None:
        runner = FailingRunner("Build engine")
        with self.assertRaises(CommandError):
            self._build(runner).run()
        self.assertEqual([record.note for record in runner.commands], ["Configure engine", "Build engine"])

    def test_run_introspects_and_cleans_up(self) -> None:
        leapseconds = self.root / "valhalla" / "third_party" / "tz" / "leapseconds"
        leapseconds.parent.mkdir(parents=True)
        leapseconds.write_text("", encoding="utf-8")
        runner = DatabaseWritingRunner(self.out_dir / "build" / "compile_commands.json", "config.cc")

        outputs = self._build(runner).run()

        self.assertEqual(outputs.include_paths, ["/eng/include", "/eng/third"])
        self.assertFalse(leapseconds.exists())
        self.assertEqual(outputs.engine.directory, str(self.out_dir / "build" / "src"))
        self.assertEqual(outputs.bridge.name, "valhalla-cxxbridge")
        compile_commands = [record.command for record in runner.commands if record.note and record.note.startswith("Compile ")]
        self.assertTrue(any("-I/eng/include" in command for command in compile_commands))


if __name__ == "__main__":
    unittest.main()
