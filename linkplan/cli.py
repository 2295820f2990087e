"""Command line interface for linkplan."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable, List, Mapping
import os
import sys

from .android import (
    DEFAULT_ABIS,
    DEFAULT_API_LEVEL,
    DEFAULT_CXX_STDLIB,
    AndroidLayout,
    build_abis,
    missing_tools,
    parse_abis,
)
from .command_runner import CommandError, RecordingCommandRunner, SubprocessCommandRunner
from .compile_commands import CompileCommandError, introspect_include_paths
from .config_loader import ProjectConfig
from .directives import Directive, DirectiveFormat, include_flags, write_directives
from .environment import OPTIONS, BuildEnvironment, load_build_environment, rerun_directives
from .link_plan import BuiltLibrary, LinkPlanEmitter
from .native_build import NativeBuild


def _make_runner(dry_run: bool) -> SubprocessCommandRunner | RecordingCommandRunner:
    return RecordingCommandRunner() if dry_run else SubprocessCommandRunner()


def _emit_dry_run_output(runner: SubprocessCommandRunner | RecordingCommandRunner) -> None:
    if isinstance(runner, RecordingCommandRunner):
        for line in runner.iter_formatted():
            print(line, file=sys.stderr)


def _require(value: str | None, *, flag: str, variable: str) -> str:
    if value:
        return value
    raise ValueError(f"{flag} was not given and {variable} is not set")


def _load_config(args: Namespace, workspace: Path) -> ProjectConfig:
    config_path = Path(args.config) if getattr(args, "config", None) else None
    if config_path is not None and not config_path.is_absolute():
        config_path = workspace / config_path
    return ProjectConfig.load(workspace, config_path)


def _show_environment(environment: BuildEnvironment) -> None:
    rows = environment.describe()
    width = max(len(key) for key, _ in rows)
    for key, value in rows:
        print(f"{key.ljust(width)}  {value}", file=sys.stderr)


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="linkplan", description="Native dependency resolution and link directive synthesis")
    parser.add_argument("-C", "--directory", default=None, metavar="PATH", help="Project root (default: current directory)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub: ArgumentParser) -> None:
        sub.add_argument("--target", help="Target triple (default: $TARGET)")
        sub.add_argument("--config", help="Configuration file (default: linkplan.{toml,json,yaml,yml} in the project root)")
        sub.add_argument(
            "--format",
            choices=[item.value for item in DirectiveFormat],
            default=DirectiveFormat.CARGO.value,
            help="Directive rendering (default: cargo)",
        )
        sub.add_argument("--verbose", action="store_true", help="Print resolved options and steps on stderr")

    resolve_parser = subparsers.add_parser("resolve", help="Emit rerun triggers and the link plan without building")
    add_common(resolve_parser)
    resolve_parser.add_argument(
        "--out-dir",
        help="Build output directory; when given, the engine and bridge archives are linked from it",
    )

    build_parser = subparsers.add_parser("build", help="Build the engine and bridge, then emit the link plan")
    add_common(build_parser)
    build_parser.add_argument("--out-dir", help="Build output directory (default: $OUT_DIR)")
    build_parser.add_argument("-n", "--dry-run", action="store_true", help="Print commands without executing them")

    includes_parser = subparsers.add_parser("includes", help="Print include paths from a compile-command database")
    includes_parser.add_argument("--database", help="Path to compile_commands.json (default: <out-dir>/build/compile_commands.json)")
    includes_parser.add_argument("--out-dir", help="Build output directory (default: $OUT_DIR)")
    includes_parser.add_argument("--reference", help="Reference source file name (default: engine.reference_source)")
    includes_parser.add_argument("--config", help="Configuration file")
    includes_parser.add_argument("--flags", action="store_true", help="Print -I flags on one line instead of one path per line")

    android_parser = subparsers.add_parser("android", help="Build every requested Android ABI with cargo ndk")
    android_parser.add_argument("--ndk", required=True, help="Android NDK root")
    android_parser.add_argument("--boost-base", required=True, help="Per-ABI Boost installs (<base>/<abi>/{include,lib})")
    android_parser.add_argument("--protobuf-base", required=True, help="Per-ABI Protobuf installs")
    android_parser.add_argument("--protoc", required=True, help="Host protoc executable")
    android_parser.add_argument("--lz4-base", required=True, help="Per-ABI LZ4 installs")
    android_parser.add_argument("--abis", default=",".join(DEFAULT_ABIS), help="Comma separated ABIs (default: %(default)s)")
    android_parser.add_argument("--api", type=int, default=DEFAULT_API_LEVEL, help="Android API level (default: %(default)s)")
    android_parser.add_argument("--cxx-stdlib", default=DEFAULT_CXX_STDLIB, help="c++_shared or c++_static (default: %(default)s)")
    android_parser.add_argument("--output-dir", default="jniLibs", help="Output directory for the built libraries")
    android_parser.add_argument("-n", "--dry-run", action="store_true", help="Print commands without executing them")

    subparsers.add_parser("options", help="List the environment variables the build reads")

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    workspace = Path(args.directory).resolve() if args.directory else Path.cwd()

    try:
        if args.command == "resolve":
            return _handle_resolve(args, workspace)
        if args.command == "build":
            return _handle_build(args, workspace)
        if args.command == "includes":
            return _handle_includes(args, workspace)
        if args.command == "android":
            return _handle_android(args, workspace)
        if args.command == "options":
            return _handle_options()
    except (CompileCommandError, CommandError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except (FileNotFoundError, KeyError, TypeError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    raise ValueError(f"Unknown command: {args.command}")


def _plan(
    environment: BuildEnvironment,
    config: ProjectConfig,
    *,
    engine: BuiltLibrary | None,
    bridge: BuiltLibrary | None,
) -> List[Directive]:
    emitter = LinkPlanEmitter(environment, boost_components=config.boost_components, engine=engine, bridge=bridge)
    return emitter.emit()


def _handle_resolve(args: Namespace, workspace: Path, env: Mapping[str, str] | None = None) -> int:
    source_env = os.environ if env is None else env
    target = _require(args.target or source_env.get("TARGET"), flag="--target", variable="TARGET")
    config = _load_config(args, workspace)
    environment, resolver = load_build_environment(target, source_env)
    if args.verbose:
        _show_environment(environment)

    engine = bridge = None
    if args.out_dir:
        out_dir = Path(args.out_dir)
        engine = BuiltLibrary(directory=str(out_dir / "build" / "src"), name=config.engine.library)
        bridge = BuiltLibrary(directory=str(out_dir / "bridge"), name=config.bridge.library)

    directives: List[Directive] = list(rerun_directives(resolver, config.watched_paths()))
    directives.extend(_plan(environment, config, engine=engine, bridge=bridge))
    write_directives(directives, output_format=DirectiveFormat(args.format), stdout=sys.stdout, stderr=sys.stderr)
    return 0


def _handle_build(args: Namespace, workspace: Path, env: Mapping[str, str] | None = None) -> int:
    source_env = os.environ if env is None else env
    target = _require(args.target or source_env.get("TARGET"), flag="--target", variable="TARGET")
    out_dir = Path(_require(args.out_dir or source_env.get("OUT_DIR"), flag="--out-dir", variable="OUT_DIR"))
    config = _load_config(args, workspace)
    environment, resolver = load_build_environment(target, source_env)
    if args.verbose:
        _show_environment(environment)

    runner = _make_runner(args.dry_run)
    native = NativeBuild(config=config, environment=environment, out_dir=out_dir, command_runner=runner)
    try:
        outputs = native.run(dry_run=args.dry_run)
    finally:
        _emit_dry_run_output(runner)

    directives: List[Directive] = list(rerun_directives(resolver, config.watched_paths()))
    directives.extend(outputs.warnings)
    directives.extend(_plan(environment, config, engine=outputs.engine, bridge=outputs.bridge))
    write_directives(directives, output_format=DirectiveFormat(args.format), stdout=sys.stdout, stderr=sys.stderr)
    if args.verbose and outputs.include_paths:
        print(" ".join(include_flags(outputs.include_paths)), file=sys.stderr)
    return 0


def _handle_includes(args: Namespace, workspace: Path, env: Mapping[str, str] | None = None) -> int:
    source_env = os.environ if env is None else env
    config = _load_config(args, workspace)
    if args.database:
        database = Path(args.database)
    else:
        out_dir = _require(args.out_dir or source_env.get("OUT_DIR"), flag="--database/--out-dir", variable="OUT_DIR")
        database = Path(out_dir) / "build" / "compile_commands.json"
    reference = args.reference or config.engine.reference_source

    include_paths = introspect_include_paths(database, reference)
    if args.flags:
        print(" ".join(include_flags(include_paths)))
    else:
        for path in include_paths:
            print(path)
    return 0


def _handle_android(args: Namespace, workspace: Path) -> int:
    if not args.dry_run:
        absent = missing_tools()
        if absent:
            print(f"Error: required tools not found on PATH: {', '.join(absent)}", file=sys.stderr)
            print("Install cargo-ndk with: cargo install cargo-ndk", file=sys.stderr)
            return 2

    layout = AndroidLayout(
        ndk=Path(args.ndk),
        boost_base=Path(args.boost_base),
        protobuf_base=Path(args.protobuf_base),
        lz4_base=Path(args.lz4_base),
        protoc=Path(args.protoc),
        cxx_stdlib=args.cxx_stdlib,
    )
    abis = parse_abis(args.abis)
    print(f"==> Building for ABIs: {','.join(abis)} (API {args.api})", file=sys.stderr)

    runner = _make_runner(args.dry_run)
    try:
        built = build_abis(
            layout,
            abis,
            api=args.api,
            output_dir=Path(args.output_dir),
            workspace=workspace,
            command_runner=runner,
            dry_run=args.dry_run,
        )
    finally:
        _emit_dry_run_output(runner)

    for triple in built:
        print(f"built {triple}", file=sys.stderr)
    return 0


def _handle_options() -> int:
    width = max(len(option.name) for option in OPTIONS)
    for option in OPTIONS:
        scope = "per-target" if option.triple_specific else "host"
        print(f"{option.name.ljust(width)}  [{scope}]  {option.description}")
    return 0


__all__ = ["main"]
