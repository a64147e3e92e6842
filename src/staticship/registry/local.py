"""Filesystem-backed registry for offline runs and tests.

Blobs are stored once by digest; each tag is a small pointer file replaced
atomically, so a tag never refers to a manifest whose blobs are missing.
"""

from __future__ import annotations

import json
from collections.abc import Collection
from dataclasses import dataclass, field
from pathlib import Path

from staticship.builders.materialize import atomic_write_bytes
from staticship.errors import AuthenticationError, PushError
from staticship.image.oci import read_blob
from staticship.models import BuiltImage, Credentials, ImageRef, PushRecord


@dataclass(slots=True)
class LocalRegistry:
    root: Path
    accepted_tokens: Collection[str] | None = None
    name: str = "local"
    _session: str | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        (self.root / "blobs" / "sha256").mkdir(parents=True, exist_ok=True)

    def login(self, credentials: Credentials) -> None:
        if not credentials.token:
            raise AuthenticationError(
                "Registry access token is missing.",
                context={"registry": self.name},
            )
        if self.accepted_tokens is not None and credentials.token not in self.accepted_tokens:
            raise AuthenticationError(
                "Registry rejected the access token.",
                hint="Check that the access token is valid and not expired.",
                context={"registry": self.name, "registry_id": credentials.registry_id},
            )
        self._session = credentials.registry_id

    def push(self, image: BuiltImage, ref: ImageRef) -> PushRecord:
        if self._session is None:
            raise PushError(
                "Push attempted without an authenticated session.",
                hint="Call login() before push().",
                context={"registry": self.name, "ref": str(ref)},
            )
        if image.kind != "oci" or image.layout_path is None:
            raise PushError(
                "Local registry only accepts OCI image layouts.",
                hint="Use the native backend with the local registry.",
                context={"registry": self.name, "ref": str(ref), "kind": image.kind},
            )

        manifest_blob = read_blob(image.layout_path, image.digest)
        manifest = json.loads(manifest_blob)
        digests = [manifest["config"]["digest"], *(layer["digest"] for layer in manifest["layers"])]
        for digest in digests:
            self._store_blob(digest, read_blob(image.layout_path, digest))
        self._store_blob(image.digest, manifest_blob)

        tag_path = self._tag_path(ref)
        tag_path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_bytes(tag_path, (image.digest + "\n").encode("utf-8"))
        return PushRecord(ref=ref, digest=image.digest)

    def resolve(self, ref: ImageRef) -> str | None:
        tag_path = self._tag_path(ref)
        if not tag_path.exists():
            return None
        return tag_path.read_text(encoding="utf-8").strip()

    def tags(self, namespace: str, repository: str) -> list[str]:
        tag_dir = self.root / "repositories" / namespace / repository / "tags"
        if not tag_dir.exists():
            return []
        return sorted(path.name for path in tag_dir.iterdir() if not path.name.startswith("."))

    def blob_path(self, digest: str) -> Path:
        algorithm, _, hexdigest = digest.partition(":")
        return self.root / "blobs" / algorithm / hexdigest

    def _store_blob(self, digest: str, payload: bytes) -> None:
        path = self.blob_path(digest)
        if path.exists():
            return
        atomic_write_bytes(path, payload)

    def _tag_path(self, ref: ImageRef) -> Path:
        return self.root / "repositories" / ref.namespace / ref.repository / "tags" / ref.tag
