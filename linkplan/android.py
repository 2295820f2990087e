"""Per-ABI Android builds through ``cargo ndk``."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping
import os
import shutil

from .command_runner import CommandRunner
from .targets import normalize_triple

ABI_TRIPLES: Dict[str, str] = {
    "armeabi-v7a": "armv7-linux-androideabi",
    "arm64-v8a": "aarch64-linux-android",
    "x86": "i686-linux-android",
    "x86_64": "x86_64-linux-android",
}

DEFAULT_ABIS = ("armeabi-v7a",)
DEFAULT_API_LEVEL = 21
DEFAULT_CXX_STDLIB = "c++_shared"
REQUIRED_TOOLS = ("cargo", "cargo-ndk")


def abi_to_triple(abi: str) -> str:
    triple = ABI_TRIPLES.get(abi.strip())
    if triple is None:
        supported = ", ".join(ABI_TRIPLES)
        raise ValueError(f"Unsupported ABI: {abi} (supported: {supported})")
    return triple


def parse_abis(value: str | Iterable[str]) -> List[str]:
    raw = value.split(",") if isinstance(value, str) else list(value)
    abis: List[str] = []
    for item in raw:
        abi = item.strip()
        if abi and abi not in abis:
            abis.append(abi)
    return abis


@dataclass(frozen=True, slots=True)
class AndroidLayout:
    """Prebuilt per-ABI installs, each laid out as ``<base>/<abi>/{include,lib}``."""

    ndk: Path
    boost_base: Path
    protobuf_base: Path
    lz4_base: Path
    protoc: Path
    cxx_stdlib: str = DEFAULT_CXX_STDLIB

    def missing_directories(self, abi: str) -> List[Path]:
        missing: List[Path] = []
        for base in (self.boost_base, self.protobuf_base, self.lz4_base):
            for sub in ("include", "lib"):
                path = base / abi / sub
                if not path.is_dir():
                    missing.append(path)
        return missing

    def validate(self, abi: str) -> None:
        missing = self.missing_directories(abi)
        if missing:
            listed = ", ".join(str(path) for path in missing)
            raise FileNotFoundError(f"Expected directories not found for ABI {abi}: {listed}")
        if not (self.protoc.is_file() and os.access(self.protoc, os.X_OK)):
            raise FileNotFoundError(f"protoc not executable: {self.protoc}")

    def environment(self, abi: str) -> Dict[str, str]:
        """Variables exported for one ABI, in bare and triple-suffixed form."""

        triple_us = normalize_triple(abi_to_triple(abi))
        boost_dir = self.boost_base / abi
        protobuf_dir = self.protobuf_base / abi
        lz4_dir = self.lz4_base / abi

        lite = protobuf_dir / "lib" / "libprotobuf-lite.a"
        protobuf_library = lite if lite.is_file() else protobuf_dir / "lib" / "libprotobuf.a"

        both = {
            "Boost_ROOT": str(boost_dir),
            "Boost_INCLUDE_DIR": str(boost_dir / "include"),
            "Boost_LIBRARY_DIR": str(boost_dir / "lib"),
            "Protobuf_INCLUDE_DIR": str(protobuf_dir / "include"),
            "Protobuf_LIBRARY": str(protobuf_library),
            "LZ4_DIR": str(lz4_dir),
            "LZ4_INCLUDE_DIR": str(lz4_dir / "include"),
            "LZ4_LIBRARY": str(lz4_dir / "lib" / "liblz4.a"),
            "CMAKE_PREFIX_PATH": f"{boost_dir}:{protobuf_dir}",
        }
        env: Dict[str, str] = {}
        for key, value in both.items():
            env[key] = value
            env[f"{key}_{triple_us}"] = value
        env[f"Protobuf_DIR_{triple_us}"] = str(protobuf_dir / "lib" / "cmake" / "protobuf")
        env[f"Protobuf_LIBRARIES_{triple_us}"] = str(protobuf_library)
        env["Protobuf_PROTOC_EXECUTABLE"] = str(self.protoc)
        env["CXX_STDLIB"] = self.cxx_stdlib
        env["ANDROID_NDK_ROOT"] = str(self.ndk)
        env["ANDROID_NDK_HOME"] = str(self.ndk)
        return env


def cargo_ndk_command(abi: str, *, api: int, output_dir: Path) -> List[str]:
    return ["cargo", "ndk", "--platform", str(api), "-t", abi, "-o", str(output_dir), "build", "--release"]


def missing_tools(tools: Iterable[str] = REQUIRED_TOOLS) -> List[str]:
    return [tool for tool in tools if shutil.which(tool) is None]


def build_abis(
    layout: AndroidLayout,
    abis: Iterable[str],
    *,
    api: int,
    output_dir: Path,
    workspace: Path,
    command_runner: CommandRunner,
    base_env: Mapping[str, str] | None = None,
    dry_run: bool = False,
) -> List[str]:
    """Build every ABI in turn; returns the triples that were built."""

    built: List[str] = []
    for abi in abis:
        triple = abi_to_triple(abi)
        if not dry_run:
            layout.validate(abi)
        env = dict(base_env or {})
        env.update(layout.environment(abi))
        command_runner.run(
            cargo_ndk_command(abi, api=api, output_dir=output_dir),
            cwd=workspace,
            env=env,
            check=not dry_run,
            note=f"ABI {abi} ({triple})",
            stream=True,
        )
        built.append(triple)
    return built


__all__ = [
    "ABI_TRIPLES",
    "AndroidLayout",
    "DEFAULT_ABIS",
    "DEFAULT_API_LEVEL",
    "DEFAULT_CXX_STDLIB",
    "abi_to_triple",
    "build_abis",
    "cargo_ndk_command",
    "missing_tools",
    "parse_abis",
]
