"""Typed interfaces for toolchain builders."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from staticship.models import BinaryArtifact, BuildRequest, TargetTriple


@dataclass(frozen=True, slots=True)
class BuildSpec:
    name: str
    manifest_path: Path
    lock_path: Path
    source_dir: Path
    target: TargetTriple
    work_dir: Path
    flags: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: BuildRequest) -> BuildSpec:
        return cls(
            name=request.binary_name,
            manifest_path=request.manifest_path,
            lock_path=request.lock_path,
            source_dir=request.source_dir,
            target=request.target,
            work_dir=request.work_dir,
        )

    @property
    def deps_dir(self) -> Path:
        """Placeholder crate holding only the manifest/lock pair."""
        return self.work_dir / "deps"

    @property
    def app_dir(self) -> Path:
        return self.work_dir / "app"

    @property
    def target_dir(self) -> Path:
        """Cargo target dir shared by the dependency and release builds."""
        return self.work_dir / "target"

    @property
    def install_root(self) -> Path:
        return self.work_dir / "install"


class Builder(Protocol):
    name: str

    def toolchain_version(self) -> str:
        """Return an identifier for the active toolchain."""

    def ensure_target(self, spec: BuildSpec) -> None:
        """Make the target triple available to the toolchain."""

    def prebuild_dependencies(self, spec: BuildSpec) -> None:
        """Compile dependencies only, leaving them in ``spec.target_dir``."""

    def build_release(
        self,
        spec: BuildSpec,
        *,
        manifest_sha256: str,
        lock_sha256: str,
    ) -> BinaryArtifact:
        """Compile the real source tree and return the release binary."""
