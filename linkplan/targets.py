"""Target triple classification.

All platform sniffing on the raw triple string lives here. The rest of the
package only looks at the resulting :class:`TargetProfile`.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PlatformFamily(str, Enum):
    ANDROID = "android"
    APPLE = "apple"
    UNIX = "unix"


DEFAULT_CXX_RUNTIMES = {
    PlatformFamily.ANDROID: "c++_shared",
    PlatformFamily.APPLE: "c++",
    PlatformFamily.UNIX: "stdc++",
}
"""C++ runtime link names used when ``CXX_STDLIB`` is not set."""

# 32-bit ARM Android runtimes ship without the atomic intrinsics in libc++.
_ATOMICS_MARKERS = ("armv7", "androideabi")


@dataclass(frozen=True, slots=True)
class TargetProfile:
    triple: str
    triple_us: str
    family: PlatformFamily
    prefer_dynamic_libs: bool
    needs_explicit_atomics: bool
    cxx_runtime: str

    @property
    def is_android(self) -> bool:
        return self.family is PlatformFamily.ANDROID


def normalize_triple(triple: str) -> str:
    """Return ``triple`` in the form used for environment variable suffixes."""

    return triple.strip().replace("-", "_")


def platform_family(triple: str) -> PlatformFamily:
    if "android" in triple:
        return PlatformFamily.ANDROID
    if "apple" in triple:
        return PlatformFamily.APPLE
    return PlatformFamily.UNIX


def classify_target(
    triple: str,
    *,
    cxx_runtime: str | None = None,
    prefer_dynamic: bool = False,
) -> TargetProfile:
    """Build the :class:`TargetProfile` for ``triple``.

    Unknown triples classify as generic Unix. ``cxx_runtime`` overrides the
    family default when it is a non-empty string.
    """

    triple = triple.strip()
    family = platform_family(triple)
    runtime = cxx_runtime.strip() if cxx_runtime and cxx_runtime.strip() else DEFAULT_CXX_RUNTIMES[family]
    return TargetProfile(
        triple=triple,
        triple_us=normalize_triple(triple),
        family=family,
        prefer_dynamic_libs=prefer_dynamic,
        needs_explicit_atomics=any(marker in triple for marker in _ATOMICS_MARKERS),
        cxx_runtime=runtime,
    )


__all__ = [
    "DEFAULT_CXX_RUNTIMES",
    "PlatformFamily",
    "TargetProfile",
    "classify_target",
    "normalize_triple",
    "platform_family",
]
