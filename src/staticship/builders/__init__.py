"""Builder contracts and the Rust two-stage builder."""

from .base import Builder, BuildSpec
from .rust import RustBuilder

__all__ = [
    "BuildSpec",
    "Builder",
    "RustBuilder",
]
