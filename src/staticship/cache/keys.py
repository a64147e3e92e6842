"""Dependency layer cache key derivation."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class DependencyCacheInput:
    manifest_sha256: str
    lock_sha256: str
    toolchain: str
    target: str
    profile: str = "release"
    flags: tuple[str, ...] = ()


def cache_key(inputs: DependencyCacheInput) -> str:
    canonical = json.dumps(_to_payload(inputs), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _to_payload(inputs: DependencyCacheInput) -> dict[str, Any]:
    return {
        "manifest_sha256": inputs.manifest_sha256,
        "lock_sha256": inputs.lock_sha256,
        "toolchain": inputs.toolchain,
        "target": inputs.target,
        "profile": inputs.profile,
        "flags": list(inputs.flags),
    }
