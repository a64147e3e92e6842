"""Registry adapters and lookup."""

from __future__ import annotations

from pathlib import Path

from staticship.errors import ValidationError

from .base import Registry
from .digitalocean import DigitalOceanRegistry
from .local import LocalRegistry


def get_registry(name: str, *, root: str | Path | None = None) -> Registry:
    if name == "digitalocean":
        return DigitalOceanRegistry()
    if name == "local":
        if root is None:
            raise ValidationError(
                "Local registry requires a root directory.",
                context={"registry": name},
            )
        return LocalRegistry(root=Path(root))
    raise ValidationError("Unsupported registry.", context={"registry": name})


__all__ = [
    "DigitalOceanRegistry",
    "LocalRegistry",
    "Registry",
    "get_registry",
]
