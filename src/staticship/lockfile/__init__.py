"""Cargo manifest/lock parsing and verification."""

from .io import parse_lock, parse_manifest, read_lock, read_manifest
from .model import CargoLock, CargoManifest, LockedPackage, ManifestDependency
from .resolve import dependency_digest, file_digest, verify_lock
from .semver import Version, VersionReq

__all__ = [
    "CargoLock",
    "CargoManifest",
    "LockedPackage",
    "ManifestDependency",
    "Version",
    "VersionReq",
    "dependency_digest",
    "file_digest",
    "parse_lock",
    "parse_manifest",
    "read_lock",
    "read_manifest",
    "verify_lock",
]
