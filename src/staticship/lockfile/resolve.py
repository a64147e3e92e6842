"""Lock verification and dependency digests."""

from __future__ import annotations

import hashlib
from pathlib import Path

from staticship.errors import DependencyResolutionError
from staticship.lockfile.model import CargoLock, CargoManifest
from staticship.lockfile.semver import VersionReq


def verify_lock(manifest: CargoManifest, lock: CargoLock) -> None:
    """Fail unless *lock* satisfies every requirement declared in *manifest*."""
    if manifest.name is not None:
        locked_root = lock.versions_of(manifest.name)
        if not locked_root:
            raise DependencyResolutionError(
                "Root package is missing from Cargo.lock.",
                hint="Run `cargo generate-lockfile` and commit the result.",
                context={"package": manifest.name},
            )
        if manifest.version is not None and manifest.version not in locked_root:
            raise DependencyResolutionError(
                "Cargo.lock is stale for the root package version.",
                hint="Run `cargo update --workspace` and commit Cargo.lock.",
                context={
                    "package": manifest.name,
                    "manifest_version": manifest.version,
                    "locked_versions": ", ".join(locked_root),
                },
            )

    for dependency in manifest.dependencies:
        locked = lock.versions_of(dependency.package)
        if not locked:
            raise DependencyResolutionError(
                "Dependency is not present in Cargo.lock.",
                hint="Run `cargo generate-lockfile` and commit the result.",
                context={"dependency": dependency.name, "package": dependency.package},
            )
        if dependency.source != "registry" or dependency.requirement is None:
            continue
        requirement = VersionReq.parse(dependency.requirement)
        if not any(requirement.matches(version) for version in locked):
            raise DependencyResolutionError(
                "Locked dependency version does not satisfy the manifest requirement.",
                hint="Run `cargo update -p <package>` and commit Cargo.lock.",
                context={
                    "dependency": dependency.name,
                    "requirement": dependency.requirement,
                    "locked_versions": ", ".join(locked),
                },
            )


def file_digest(path: str | Path) -> str:
    return hashlib.sha256(Path(path).read_bytes()).hexdigest()


def dependency_digest(manifest_path: str | Path, lock_path: str | Path) -> str:
    """Digest identifying one exact manifest/lock pair."""
    digest = hashlib.sha256()
    for path in (Path(manifest_path), Path(lock_path)):
        payload = path.read_bytes()
        digest.update(f"{path.name}:{len(payload)}:".encode())
        digest.update(payload)
    return digest.hexdigest()
