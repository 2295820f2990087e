from __future__ import annotations

import io
import unittest

from linkplan.artifacts import LibraryKind
from linkplan.directives import (
    BuildWarning,
    DirectiveFormat,
    LinkLibrary,
    RerunIfChanged,
    RerunIfEnvChanged,
    SearchPath,
    render_cargo,
    render_flags,
    write_directives,
)


class RenderTests(unittest.TestCase):
    def test_cargo_lines(self) -> None:
        cases = [
            (SearchPath("/opt/lib"), "cargo:rustc-link-search=native=/opt/lib"),
            (LinkLibrary("lz4", LibraryKind.STATIC), "cargo:rustc-link-lib=static=lz4"),
            (LinkLibrary("lz4", LibraryKind.DYNAMIC), "cargo:rustc-link-lib=lz4"),
            (LinkLibrary("z"), "cargo:rustc-link-lib=z"),
            (RerunIfChanged("src/lib.rs"), "cargo:rerun-if-changed=src/lib.rs"),
            (RerunIfEnvChanged("LZ4_DIR"), "cargo:rerun-if-env-changed=LZ4_DIR"),
            (BuildWarning("careful"), "cargo:warning=careful"),
        ]
        for directive, expected in cases:
            with self.subTest(directive=directive):
                self.assertEqual(render_cargo(directive), expected)

    def test_unknown_directive(self) -> None:
        with self.assertRaises(TypeError):
            render_cargo("cargo:rustc-link-lib=z")  # type: ignore[arg-type]

    def test_flags(self) -> None:
        self.assertEqual(render_flags(SearchPath("/l")), ["-L/l"])
        self.assertEqual(
            render_flags(LinkLibrary("lz4", LibraryKind.STATIC)),
            ["-Wl,-Bstatic", "-llz4", "-Wl,-Bdynamic"],
        )
        self.assertEqual(render_flags(RerunIfEnvChanged("X")), [])


class WriteDirectivesTests(unittest.TestCase):
    def test_cargo_stream_preserves_order(self) -> None:
        stdout, stderr = io.StringIO(), io.StringIO()
        write_directives(
            [RerunIfChanged("build.rs"), BuildWarning("w"), LinkLibrary("z")],
            output_format=DirectiveFormat.CARGO,
            stdout=stdout,
            stderr=stderr,
        )
        self.assertEqual(
            stdout.getvalue().splitlines(),
            ["cargo:rerun-if-changed=build.rs", "cargo:warning=w", "cargo:rustc-link-lib=z"],
        )
        self.assertEqual(stderr.getvalue(), "")

    def test_flags_send_warnings_to_stderr(self) -> None:
        stdout, stderr = io.StringIO(), io.StringIO()
        write_directives(
            [SearchPath("/l"), BuildWarning("w"), LinkLibrary("z")],
            output_format=DirectiveFormat.FLAGS,
            stdout=stdout,
            stderr=stderr,
        )
        self.assertEqual(stdout.getvalue().strip(), "-L/l -lz")
        self.assertIn("Warning: w", stderr.getvalue())


if __name__ == "__main__":
    unittest.main()
