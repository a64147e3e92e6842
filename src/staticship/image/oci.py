"""OCI image layout assembly for single-binary runtime images.

The runtime image carries one layer holding only the release binary, an
exec-form entrypoint and no base filesystem. All timestamps, ownership and
JSON encodings are fixed so the same binary and revision always yield the
same manifest digest.
"""

from __future__ import annotations

import gzip
import hashlib
import io
import json
import tarfile
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Literal

from staticship.builders.materialize import atomic_write_bytes, reset_dir
from staticship.errors import AssemblyError, ReproducibilityError, ValidationError
from staticship.models import BinaryArtifact, BuiltImage, TargetTriple, architecture_for

OCI_LAYOUT_VERSION = "1.0.0"
MEDIA_TYPE_INDEX = "application/vnd.oci.image.index.v1+json"
MEDIA_TYPE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MEDIA_TYPE_CONFIG = "application/vnd.oci.image.config.v1+json"
MEDIA_TYPE_LAYER = "application/vnd.oci.image.layer.v1.tar+gzip"
REF_NAME_ANNOTATION = "org.opencontainers.image.ref.name"
REVISION_LABEL = "org.opencontainers.image.revision"
EPOCH = "1970-01-01T00:00:00Z"
BINARY_MODE = 0o755

EntryKind = Literal["file", "dir", "symlink", "other"]


@dataclass(frozen=True, slots=True)
class Descriptor:
    media_type: str
    digest: str
    size: int
    annotations: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "mediaType": self.media_type,
            "digest": self.digest,
            "size": self.size,
        }
        if self.annotations:
            payload["annotations"] = dict(sorted(self.annotations.items()))
        return payload


@dataclass(frozen=True, slots=True)
class LayerEntry:
    path: str
    kind: EntryKind
    mode: int
    size: int


@dataclass(frozen=True, slots=True)
class ImageInspection:
    digest: str
    architecture: str
    entrypoint: tuple[str, ...]
    cmd: tuple[str, ...]
    labels: Mapping[str, str]
    layer_digests: tuple[str, ...]
    entries: tuple[LayerEntry, ...]

    @property
    def files(self) -> tuple[LayerEntry, ...]:
        return tuple(entry for entry in self.entries if entry.kind == "file")


def build_layer(binary_path: Path, entrypoint_path: str) -> tuple[bytes, str]:
    """Return the gzip layer blob and its uncompressed ``diff_id``."""
    relative = _layer_path(entrypoint_path)
    payload = binary_path.read_bytes()

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w", format=tarfile.USTAR_FORMAT) as archive:
        for parent in reversed(PurePosixPath(relative).parents[:-1]):
            archive.addfile(_tar_info(f"{parent}/", kind=tarfile.DIRTYPE, size=0))
        archive.addfile(
            _tar_info(relative, kind=tarfile.REGTYPE, size=len(payload)),
            io.BytesIO(payload),
        )
    uncompressed = buffer.getvalue()
    diff_id = f"sha256:{hashlib.sha256(uncompressed).hexdigest()}"
    return gzip.compress(uncompressed, compresslevel=9, mtime=0), diff_id


def assemble_runtime_image(
    binary: BinaryArtifact,
    *,
    layout_dir: Path,
    entrypoint_path: str,
    target: TargetTriple,
    revision: str | None = None,
) -> BuiltImage:
    """Write an untagged OCI layout for *binary* and verify the result."""
    reset_dir(layout_dir)
    (layout_dir / "oci-layout").write_text(
        json.dumps({"imageLayoutVersion": OCI_LAYOUT_VERSION}) + "\n",
        encoding="utf-8",
    )

    layer_blob, diff_id = build_layer(binary.path, entrypoint_path)
    layer = _write_blob(layout_dir, layer_blob, MEDIA_TYPE_LAYER)

    labels = {REVISION_LABEL: revision} if revision else {}
    config: dict[str, Any] = {
        "architecture": architecture_for(target),
        "os": "linux",
        "created": EPOCH,
        "config": {"Entrypoint": [entrypoint_path], "Labels": labels},
        "rootfs": {"type": "layers", "diff_ids": [diff_id]},
        "history": [
            {"created": EPOCH, "created_by": f"COPY {binary.name} {entrypoint_path}"},
        ],
    }
    config_descriptor = _write_blob(layout_dir, _canonical_json(config), MEDIA_TYPE_CONFIG)

    manifest: dict[str, Any] = {
        "schemaVersion": 2,
        "mediaType": MEDIA_TYPE_MANIFEST,
        "config": config_descriptor.to_dict(),
        "layers": [layer.to_dict()],
    }
    manifest_descriptor = _write_blob(layout_dir, _canonical_json(manifest), MEDIA_TYPE_MANIFEST)
    _write_index(layout_dir, [manifest_descriptor])

    verify_runtime_image(
        inspect_layout(layout_dir, manifest_descriptor.digest),
        entrypoint_path,
    )
    return BuiltImage(
        kind="oci",
        digest=manifest_descriptor.digest,
        variant="scratch",
        layout_path=layout_dir,
        binary=binary,
    )


def tag_layout(layout_dir: Path, digest: str, tags: Iterable[str]) -> None:
    """Point each of *tags* at the manifest *digest* in ``index.json``."""
    tags = tuple(tags)
    manifests = _read_index(layout_dir)
    target = next((item for item in manifests if item.digest == digest), None)
    if target is None:
        raise ValidationError(
            "Manifest digest is not present in the image layout.",
            context={"layout": str(layout_dir), "digest": digest},
        )

    kept = [
        item
        for item in manifests
        if item.digest != digest and item.annotations.get(REF_NAME_ANNOTATION) not in tags
    ]
    for tag in tags:
        kept.append(
            Descriptor(
                media_type=target.media_type,
                digest=target.digest,
                size=target.size,
                annotations={REF_NAME_ANNOTATION: tag},
            )
        )
    _write_index(layout_dir, kept)


def resolve_tag(layout_dir: Path, tag: str) -> str | None:
    for item in _read_index(layout_dir):
        if item.annotations.get(REF_NAME_ANNOTATION) == tag:
            return item.digest
    return None


def read_blob(layout_dir: Path, digest: str) -> bytes:
    algorithm, _, hexdigest = digest.partition(":")
    path = layout_dir / "blobs" / algorithm / hexdigest
    try:
        payload = path.read_bytes()
    except FileNotFoundError as exc:
        raise AssemblyError(
            "Image layout is missing a blob.",
            context={"layout": str(layout_dir), "digest": digest},
        ) from exc
    if f"{algorithm}:{hashlib.new(algorithm, payload).hexdigest()}" != digest:
        raise ReproducibilityError(
            "Image blob content does not match its digest.",
            hint="Rebuild the image layout.",
            context={"layout": str(layout_dir), "digest": digest},
        )
    return payload


def inspect_layout(layout_dir: Path, digest: str | None = None) -> ImageInspection:
    manifests = _read_index(layout_dir)
    if not manifests:
        raise AssemblyError("Image layout index is empty.", context={"layout": str(layout_dir)})
    if digest is None:
        digest = manifests[0].digest
    elif all(item.digest != digest for item in manifests):
        raise AssemblyError(
            "Manifest digest is not present in the image layout.",
            context={"layout": str(layout_dir), "digest": digest},
        )

    manifest = json.loads(read_blob(layout_dir, digest))
    config = json.loads(read_blob(layout_dir, manifest["config"]["digest"]))
    runtime = config.get("config") or {}

    layer_digests: list[str] = []
    entries: list[LayerEntry] = []
    for layer in manifest.get("layers", []):
        layer_digests.append(layer["digest"])
        entries.extend(_layer_entries(read_blob(layout_dir, layer["digest"])))

    return ImageInspection(
        digest=digest,
        architecture=config.get("architecture", ""),
        entrypoint=tuple(runtime.get("Entrypoint") or ()),
        cmd=tuple(runtime.get("Cmd") or ()),
        labels=dict(runtime.get("Labels") or {}),
        layer_digests=tuple(layer_digests),
        entries=tuple(entries),
    )


def verify_runtime_image(inspection: ImageInspection, entrypoint_path: str) -> None:
    """Require exactly one executable file, at *entrypoint_path*, run directly."""
    expected = _layer_path(entrypoint_path)
    context = {"digest": inspection.digest, "entrypoint": entrypoint_path}

    unexpected = [entry.path for entry in inspection.entries if entry.kind not in ("file", "dir")]
    files = inspection.files
    if unexpected or len(files) != 1 or files[0].path != expected:
        raise AssemblyError(
            "Runtime image must contain exactly one file: the entrypoint binary.",
            context={
                **context,
                "files": ", ".join(entry.path for entry in files),
                "unexpected": ", ".join(unexpected),
            },
        )
    if not files[0].mode & 0o111:
        raise AssemblyError("Runtime binary is not executable.", context=context)
    if inspection.entrypoint != (entrypoint_path,) or inspection.cmd:
        raise AssemblyError(
            "Runtime image must invoke the binary directly with no arguments.",
            context={**context, "configured": " ".join(inspection.entrypoint)},
        )


def _layer_path(entrypoint_path: str) -> str:
    path = PurePosixPath(entrypoint_path)
    if not path.is_absolute() or ".." in path.parts or path == PurePosixPath("/"):
        raise ValidationError(
            "Entrypoint must be an absolute file path.",
            context={"entrypoint": entrypoint_path},
        )
    return str(path.relative_to("/"))


def _tar_info(name: str, *, kind: bytes, size: int) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = kind
    info.size = size
    info.mode = BINARY_MODE
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


def _layer_entries(blob: bytes) -> list[LayerEntry]:
    entries: list[LayerEntry] = []
    with tarfile.open(fileobj=io.BytesIO(blob), mode="r:*") as archive:
        for member in archive.getmembers():
            name = member.name.removeprefix("./").strip("/")
            if member.isfile():
                kind: EntryKind = "file"
            elif member.isdir():
                kind = "dir"
            elif member.issym() or member.islnk():
                kind = "symlink"
            else:
                kind = "other"
            entries.append(LayerEntry(path=name, kind=kind, mode=member.mode, size=member.size))
    return entries


def _canonical_json(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _write_blob(layout_dir: Path, payload: bytes, media_type: str) -> Descriptor:
    hexdigest = hashlib.sha256(payload).hexdigest()
    blob_dir = layout_dir / "blobs" / "sha256"
    blob_dir.mkdir(parents=True, exist_ok=True)
    path = blob_dir / hexdigest
    if not path.exists():
        atomic_write_bytes(path, payload)
    return Descriptor(media_type=media_type, digest=f"sha256:{hexdigest}", size=len(payload))


def _write_index(layout_dir: Path, manifests: list[Descriptor]) -> None:
    index = {
        "schemaVersion": 2,
        "mediaType": MEDIA_TYPE_INDEX,
        "manifests": [item.to_dict() for item in manifests],
    }
    atomic_write_bytes(
        layout_dir / "index.json",
        (json.dumps(index, indent=2, sort_keys=True) + "\n").encode("utf-8"),
    )


def _read_index(layout_dir: Path) -> list[Descriptor]:
    try:
        index = json.loads((layout_dir / "index.json").read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise AssemblyError(
            "Image layout has no index.json.",
            context={"layout": str(layout_dir)},
        ) from exc
    return [
        Descriptor(
            media_type=item["mediaType"],
            digest=item["digest"],
            size=item["size"],
            annotations=dict(item.get("annotations") or {}),
        )
        for item in index.get("manifests", [])
    ]
