"""Core typed dataclasses for build requests, images and pipeline runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Literal

from .errors import ValidationError

TargetTriple = str
RuntimeVariant = Literal["scratch", "alpine", "debian"]
ImageKind = Literal["oci", "docker"]
TransitionOutcome = Literal["entered", "completed", "failed"]

DEFAULT_TARGET: TargetTriple = "x86_64-unknown-linux-musl"
RUNTIME_VARIANTS: tuple[RuntimeVariant, ...] = ("scratch", "alpine", "debian")

_ARCHITECTURES = {
    "x86_64": "amd64",
    "aarch64": "arm64",
}


class RunState(StrEnum):
    """States of one publish run, in execution order."""

    CHECKOUT = "checkout"
    AUTHENTICATE = "authenticate"
    BUILD = "build"
    TAG = "tag"
    PUSH_SHA = "push_sha"
    PUSH_LATEST = "push_latest"
    DONE = "done"
    FAILED = "failed"


def architecture_for(target: TargetTriple) -> str:
    """Map a Rust target triple onto the OCI ``architecture`` value."""
    arch = target.split("-", 1)[0]
    try:
        return _ARCHITECTURES[arch]
    except KeyError:
        raise ValidationError(
            "Unsupported target architecture.",
            hint=f"Use one of: {', '.join(sorted(_ARCHITECTURES))}.",
            context={"target": target},
        ) from None


@dataclass(frozen=True, slots=True)
class ImageRef:
    registry: str
    namespace: str
    repository: str
    tag: str

    @property
    def name(self) -> str:
        return f"{self.registry}/{self.namespace}/{self.repository}"

    def __str__(self) -> str:
        return f"{self.name}:{self.tag}"


@dataclass(frozen=True, slots=True)
class Revision:
    commit: str
    tree_hash: str | None = None
    dirty: bool = False


@dataclass(frozen=True, slots=True)
class Credentials:
    registry_id: str
    token: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class BuildRequest:
    """Everything a build backend needs for one build of one revision."""

    source_dir: Path
    build_dir: Path
    binary_name: str
    target: TargetTriple
    variant: RuntimeVariant
    commit: str
    entrypoint_path: str
    manifest_path: Path
    lock_path: Path
    builder_image: str | None = None

    @property
    def work_dir(self) -> Path:
        return self.build_dir / "work"

    @property
    def layout_dir(self) -> Path:
        return self.build_dir / "image" / self.commit


@dataclass(frozen=True, slots=True)
class BinaryArtifact:
    name: str
    path: Path
    target: TargetTriple
    sha256: str
    size: int


@dataclass(frozen=True, slots=True)
class DependencyLayer:
    key: str
    digest: str
    path: Path
    cache_hit: bool


@dataclass(frozen=True, slots=True)
class BuiltImage:
    kind: ImageKind
    digest: str
    variant: RuntimeVariant
    layout_path: Path | None = None
    binary: BinaryArtifact | None = None
    dependency_layer: DependencyLayer | None = None


@dataclass(frozen=True, slots=True)
class TaggedImage:
    image: BuiltImage
    sha_ref: ImageRef
    latest_ref: ImageRef

    @property
    def refs(self) -> tuple[ImageRef, ImageRef]:
        return (self.sha_ref, self.latest_ref)


@dataclass(frozen=True, slots=True)
class PushRecord:
    ref: ImageRef
    digest: str


@dataclass(frozen=True, slots=True)
class Transition:
    state: RunState
    outcome: TransitionOutcome
    detail: str = ""
