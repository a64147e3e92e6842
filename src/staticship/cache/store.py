"""Content-addressed dependency layer store with manifest verification."""

from __future__ import annotations

import json
import shutil
from dataclasses import dataclass
from pathlib import Path

from staticship.builders.materialize import atomic_copy, atomic_write_bytes, sha256_file
from staticship.cache.keys import DependencyCacheInput, _to_payload, cache_key
from staticship.errors import ReproducibilityError

LAYER_NAME = "layer.tar"
MANIFEST_NAME = "manifest.json"


@dataclass(frozen=True, slots=True)
class CachedLayer:
    key: str
    digest: str
    path: Path


class LayerCacheStore:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def load(self, *, key: str, expected_inputs: DependencyCacheInput) -> CachedLayer | None:
        entry = self.root / key
        layer_path = entry / LAYER_NAME
        manifest_path = entry / MANIFEST_NAME
        if not layer_path.exists() or not manifest_path.exists():
            return None

        manifest = self._read_manifest(manifest_path)
        if manifest.get("inputs") != _to_payload(expected_inputs):
            raise ReproducibilityError(
                "Cache manifest inputs do not match expected build inputs.",
                hint="Invalidate the cache entry and rebuild.",
                context={"operation": "cache_load", "key": key},
            )
        if manifest.get("key") != key:
            raise ReproducibilityError(
                "Cache manifest key mismatch.",
                hint="Invalidate the cache entry and rebuild.",
                context={"operation": "cache_load", "key": key},
            )

        actual_digest = sha256_file(layer_path)
        if manifest.get("layer_sha256") != actual_digest:
            raise ReproducibilityError(
                "Cached dependency layer digest mismatch.",
                hint="Invalidate the cache entry and rebuild.",
                context={"operation": "cache_load", "key": key},
            )
        return CachedLayer(key=key, digest=actual_digest, path=layer_path)

    def save(self, *, inputs: DependencyCacheInput, layer: str | Path) -> CachedLayer:
        key = cache_key(inputs)
        entry = self.root / key
        entry.mkdir(parents=True, exist_ok=True)

        layer_path = entry / LAYER_NAME
        digest = atomic_copy(Path(layer), layer_path)

        manifest = {
            "key": key,
            "inputs": _to_payload(inputs),
            "layer_sha256": digest,
        }
        atomic_write_bytes(
            entry / MANIFEST_NAME,
            (json.dumps(manifest, indent=2, sort_keys=True) + "\n").encode("utf-8"),
        )
        return CachedLayer(key=key, digest=digest, path=layer_path)

    def invalidate(self, key: str) -> bool:
        entry = self.root / key
        if not entry.exists():
            return False
        shutil.rmtree(entry)
        return True

    def _read_manifest(self, path: Path) -> dict[str, object]:
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ReproducibilityError(
                "Cache manifest is not valid JSON.",
                hint="Invalidate the cache entry and rebuild.",
                context={"operation": "cache_load", "path": str(path)},
            ) from exc
        if not isinstance(parsed, dict):
            raise ReproducibilityError(
                "Cache manifest has invalid structure.",
                hint="Invalidate the cache entry and rebuild.",
                context={"operation": "cache_load", "path": str(path)},
            )
        return parsed
