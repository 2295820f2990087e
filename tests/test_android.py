from __future__ import annotations

from pathlib import Path
import os
import tempfile
import unittest

from linkplan.android import (
    AndroidLayout,
    abi_to_triple,
    build_abis,
    cargo_ndk_command,
    parse_abis,
)
from linkplan.command_runner import RecordingCommandRunner
from linkplan.environment import load_build_environment


class AbiTests(unittest.TestCase):
    def test_abi_to_triple(self) -> None:
        self.assertEqual(abi_to_triple("armeabi-v7a"), "armv7-linux-androideabi")
        self.assertEqual(abi_to_triple("arm64-v8a"), "aarch64-linux-android")
        with self.assertRaises(ValueError):
            abi_to_triple("mips")

    def test_parse_abis(self) -> None:
        self.assertEqual(parse_abis("arm64-v8a, x86_64,,arm64-v8a"), ["arm64-v8a", "x86_64"])

    def test_cargo_ndk_command(self) -> None:
        self.assertEqual(
            cargo_ndk_command("x86", api=24, output_dir=Path("jniLibs")),
            ["cargo", "ndk", "--platform", "24", "-t", "x86", "-o", "jniLibs", "build", "--release"],
        )


class AndroidLayoutTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.protoc = self.root / "bin" / "protoc"
        self.layout = AndroidLayout(
            ndk=self.root / "ndk",
            boost_base=self.root / "boost",
            protobuf_base=self.root / "protobuf",
            lz4_base=self.root / "lz4",
            protoc=self.protoc,
        )

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _populate(self, abi: str) -> None:
        for base in ("boost", "protobuf", "lz4"):
            for sub in ("include", "lib"):
                (self.root / base / abi / sub).mkdir(parents=True, exist_ok=True)
        self.protoc.parent.mkdir(parents=True, exist_ok=True)
        self.protoc.write_text("#!/bin/sh\n", encoding="utf-8")
        os.chmod(self.protoc, 0o755)

    def test_validate_reports_missing_directories(self) -> None:
        with self.assertRaises(FileNotFoundError) as ctx:
            self.layout.validate("arm64-v8a")
        self.assertIn("boost", str(ctx.exception))

    def test_validate_requires_executable_protoc(self) -> None:
        self._populate("arm64-v8a")
        os.chmod(self.protoc, 0o644)
        with self.assertRaises(FileNotFoundError):
            self.layout.validate("arm64-v8a")

    def test_environment_exports_both_spellings(self) -> None:
        env = self.layout.environment("armeabi-v7a")
        suffix = "armv7_linux_androideabi"
        lz4 = str(self.root / "lz4" / "armeabi-v7a")
        self.assertEqual(env["LZ4_DIR"], lz4)
        self.assertEqual(env[f"LZ4_DIR_{suffix}"], lz4)
        self.assertEqual(env["CXX_STDLIB"], "c++_shared")
        self.assertNotIn("Protobuf_PROTOC_EXECUTABLE_" + suffix, env)
        self.assertTrue(env[f"Protobuf_LIBRARY_{suffix}"].endswith("libprotobuf.a"))

    def test_environment_prefers_protobuf_lite(self) -> None:
        self._populate("arm64-v8a")
        (self.root / "protobuf" / "arm64-v8a" / "lib" / "libprotobuf-lite.a").write_bytes(b"")
        env = self.layout.environment("arm64-v8a")
        self.assertTrue(env["Protobuf_LIBRARY"].endswith("libprotobuf-lite.a"))

    def test_exported_environment_resolves_for_the_target(self) -> None:
        env = self.layout.environment("arm64-v8a")
        environment, _ = load_build_environment("aarch64-linux-android", env)
        self.assertEqual(environment.lz4_dir, str(self.root / "lz4" / "arm64-v8a"))
        self.assertEqual(environment.protoc, str(self.protoc))
        self.assertEqual(environment.protobuf_component, "protobuf-lite")

    def test_build_abis_runs_cargo_ndk_per_abi(self) -> None:
        for abi in ("armeabi-v7a", "arm64-v8a"):
            self._populate(abi)
        runner = RecordingCommandRunner()
        built = build_abis(
            self.layout,
            ["armeabi-v7a", "arm64-v8a"],
            api=21,
            output_dir=Path("jniLibs"),
            workspace=self.root,
            command_runner=runner,
            base_env={"PATH": "/usr/bin"},
        )
        self.assertEqual(built, ["armv7-linux-androideabi", "aarch64-linux-android"])
        self.assertEqual([record.note for record in runner.commands], [
            "ABI armeabi-v7a (armv7-linux-androideabi)",
            "ABI arm64-v8a (aarch64-linux-android)",
        ])
        self.assertEqual(runner.commands[0].env["PATH"], "/usr/bin")
        self.assertEqual(runner.commands[1].cwd, str(self.root))

    def test_dry_run_skips_validation(self) -> None:
        runner = RecordingCommandRunner()
        built = build_abis(
            self.layout,
            ["x86_64"],
            api=21,
            output_dir=Path("out"),
            workspace=self.root,
            command_runner=runner,
            dry_run=True,
        )
        self.assertEqual(built, ["x86_64-linux-android"])
        self.assertEqual(len(runner.commands), 1)


if __name__ == "__main__":
    unittest.main()
