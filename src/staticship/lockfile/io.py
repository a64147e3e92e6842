"""Manifest and lockfile parsers."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from staticship.errors import LockfileError
from staticship.lockfile.model import (
    CargoLock,
    CargoManifest,
    DependencyKind,
    LockedPackage,
    ManifestDependency,
)

_DEPENDENCY_TABLES: tuple[tuple[str, DependencyKind], ...] = (
    ("dependencies", "normal"),
    ("build-dependencies", "build"),
)


def parse_manifest(raw: str) -> CargoManifest:
    payload = _load_toml(raw, kind="manifest")

    package = payload.get("package")
    name: str | None = None
    version: str | None = None
    if package is not None:
        if not isinstance(package, dict):
            raise LockfileError("Invalid manifest `package` table.")
        name = _required_str(package, "name", kind="manifest")
        raw_version = package.get("version")
        # Workspace-inherited versions ({ workspace = true }) are not pinned here.
        version = raw_version if isinstance(raw_version, str) else None

    dependencies: list[ManifestDependency] = []
    for table, dep_kind in _DEPENDENCY_TABLES:
        dependencies.extend(_parse_dependency_table(payload.get(table), dep_kind))

    targets = payload.get("target", {})
    if not isinstance(targets, dict):
        raise LockfileError("Invalid manifest `target` table.")
    for cfg in sorted(targets):
        section = targets[cfg]
        if not isinstance(section, dict):
            raise LockfileError("Invalid manifest target section.", context={"target": cfg})
        for table, dep_kind in _DEPENDENCY_TABLES:
            dependencies.extend(_parse_dependency_table(section.get(table), dep_kind))

    return CargoManifest(name=name, version=version, dependencies=tuple(dependencies))


def parse_lock(raw: str) -> CargoLock:
    payload = _load_toml(raw, kind="lockfile")

    # Version 1 lockfiles carry no top-level `version` key.
    version = payload.get("version", 1)
    if not isinstance(version, int) or version < 1:
        raise LockfileError("Invalid lockfile `version` value.")

    packages_raw = payload.get("package", [])
    if not isinstance(packages_raw, list):
        raise LockfileError("Invalid lockfile `package` array.")
    packages = tuple(_parse_locked_package(item) for item in packages_raw)
    return CargoLock(version=version, packages=packages)


def read_manifest(path: str | Path) -> CargoManifest:
    return parse_manifest(_read(Path(path), kind="manifest"))


def read_lock(path: str | Path) -> CargoLock:
    return parse_lock(_read(Path(path), kind="lockfile"))


def _read(path: Path, *, kind: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockfileError(
            f"Cargo {kind} does not exist.",
            hint="Commit both Cargo.toml and Cargo.lock; builds always run with --locked.",
            context={"path": str(path)},
        ) from exc


def _load_toml(raw: str, *, kind: str) -> dict[str, Any]:
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise LockfileError(f"Invalid {kind} TOML.", hint=str(exc)) from exc


def _parse_dependency_table(table: Any, dep_kind: DependencyKind) -> list[ManifestDependency]:
    if table is None:
        return []
    if not isinstance(table, dict):
        raise LockfileError("Invalid manifest dependency table.")
    parsed: list[ManifestDependency] = []
    for name in sorted(table):
        spec = table[name]
        if isinstance(spec, str):
            parsed.append(
                ManifestDependency(name=name, package=name, requirement=spec, kind=dep_kind)
            )
            continue
        if not isinstance(spec, dict):
            raise LockfileError("Invalid manifest dependency entry.", context={"dependency": name})
        if spec.get("workspace") is True:
            continue
        package = spec.get("package", name)
        requirement = spec.get("version")
        if not isinstance(package, str) or (
            requirement is not None and not isinstance(requirement, str)
        ):
            raise LockfileError("Invalid manifest dependency entry.", context={"dependency": name})
        if "path" in spec:
            source = "path"
        elif "git" in spec:
            source = "git"
        else:
            source = "registry"
        parsed.append(
            ManifestDependency(
                name=name,
                package=package,
                requirement=requirement,
                kind=dep_kind,
                source=source,
            )
        )
    return parsed


def _parse_locked_package(item: Any) -> LockedPackage:
    if not isinstance(item, dict):
        raise LockfileError("Invalid package entry in lockfile.")
    source = item.get("source")
    checksum = item.get("checksum")
    return LockedPackage(
        name=_required_str(item, "name", kind="lockfile"),
        version=_required_str(item, "version", kind="lockfile"),
        source=source if isinstance(source, str) else None,
        checksum=checksum if isinstance(checksum, str) else None,
    )


def _required_str(payload: dict[str, Any], key: str, *, kind: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise LockfileError(f"Invalid {kind} `{key}` value.")
    return value
