"""Native dependency resolution and link directive synthesis for the routing engine bridge."""
from __future__ import annotations

from .cli import main

__all__ = ["main"]
