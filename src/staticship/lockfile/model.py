"""Manifest and lockfile typed model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

DependencyKind = Literal["normal", "build"]
DependencySource = Literal["registry", "path", "git"]


@dataclass(frozen=True, slots=True)
class ManifestDependency:
    name: str
    package: str
    requirement: str | None
    kind: DependencyKind = "normal"
    source: DependencySource = "registry"


@dataclass(frozen=True, slots=True)
class CargoManifest:
    name: str | None
    version: str | None
    dependencies: tuple[ManifestDependency, ...] = ()


@dataclass(frozen=True, slots=True)
class LockedPackage:
    name: str
    version: str
    source: str | None = None
    checksum: str | None = None


@dataclass(frozen=True, slots=True)
class CargoLock:
    version: int
    packages: tuple[LockedPackage, ...] = ()

    def versions_of(self, name: str) -> tuple[str, ...]:
        return tuple(package.version for package in self.packages if package.name == name)
