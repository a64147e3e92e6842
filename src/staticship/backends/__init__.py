"""Build backend interfaces and implementations."""

from __future__ import annotations

from pathlib import Path

from staticship.errors import ValidationError

from .base import BuildBackend
from .docker import DockerBackend
from .native import NativeBackend


def get_backend(name: str, *, cache_dir: str | Path | None = None) -> BuildBackend:
    if name == "native":
        if cache_dir is None:
            raise ValidationError(
                "Native backend requires a cache directory.",
                context={"backend": name},
            )
        return NativeBackend(cache_dir=Path(cache_dir))
    if name == "docker":
        return DockerBackend()
    raise ValidationError("Unsupported build backend.", context={"backend": name})


__all__ = [
    "BuildBackend",
    "DockerBackend",
    "NativeBackend",
    "get_backend",
]
