"""Run-scoped pipeline configuration.

A single :class:`PipelineConfig` is built once per run, from the CI
environment or explicit arguments, and passed to every stage.  Nothing in
the SDK reads the environment after this point.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ValidationError
from .models import (
    DEFAULT_TARGET,
    RUNTIME_VARIANTS,
    BuildRequest,
    Credentials,
    ImageRef,
    Revision,
    RuntimeVariant,
    TargetTriple,
)

DEFAULT_REGISTRY_HOST = "registry.digitalocean.com"
DEFAULT_REPOSITORY = "image"
DEFAULT_BINARY_NAME = "ligmir"
MANIFEST_NAME = "Cargo.toml"
LOCK_NAME = "Cargo.lock"
ALLOWED_TRIGGERS = ("push", "workflow_dispatch")

ENV_COMMIT = "GITHUB_SHA"
ENV_TRIGGER = "GITHUB_EVENT_NAME"
ENV_ACCESS_TOKEN = "DIGITALOCEAN_ACCESS_TOKEN"
ENV_REGISTRY_ID = "DIGITALOCEAN_CONTAINER_REGISTRY"
ENV_VARIANT = "STATICSHIP_VARIANT"
ENV_TARGET = "STATICSHIP_TARGET"
ENV_BUILD_DIR = "STATICSHIP_BUILD_DIR"

COMMIT_PATTERN = re.compile(r"^[0-9a-f]{7,40}$")
TAG_COMPONENT_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    registry_id: str
    access_token: str = field(default="", repr=False)
    commit_sha: str | None = None
    source_dir: Path = field(default_factory=lambda: Path("."))
    build_dir: Path = field(default_factory=lambda: Path("build"))
    binary_name: str = DEFAULT_BINARY_NAME
    target: TargetTriple = DEFAULT_TARGET
    variant: RuntimeVariant = "scratch"
    registry_host: str = DEFAULT_REGISTRY_HOST
    repository: str = DEFAULT_REPOSITORY
    tag_prefix: str = DEFAULT_BINARY_NAME
    trigger: str = "push"
    repo_url: str | None = None
    require_clean_worktree: bool = False
    builder_image: str | None = None
    cache_dir: Path | None = None

    def __post_init__(self) -> None:
        if not self.registry_id.strip():
            raise ValidationError(
                "A container registry identifier is required.",
                hint=f"Set {ENV_REGISTRY_ID} or pass registry_id explicitly.",
            )
        if self.commit_sha is not None and not COMMIT_PATTERN.fullmatch(self.commit_sha):
            raise ValidationError(
                "Commit SHA must be 7-40 lowercase hex characters.",
                context={"commit_sha": self.commit_sha},
            )
        if self.trigger not in ALLOWED_TRIGGERS:
            raise ValidationError(
                "Unsupported pipeline trigger.",
                hint=f"Runs are only triggered by: {', '.join(ALLOWED_TRIGGERS)}.",
                context={"trigger": self.trigger},
            )
        if self.variant not in RUNTIME_VARIANTS:
            raise ValidationError(
                "Unknown runtime image variant.",
                hint=f"Use one of: {', '.join(RUNTIME_VARIANTS)}.",
                context={"variant": self.variant},
            )
        for label, value in (("binary_name", self.binary_name), ("tag_prefix", self.tag_prefix)):
            if not TAG_COMPONENT_PATTERN.fullmatch(value):
                raise ValidationError(
                    f"Invalid {label} value.",
                    hint="Use lowercase letters, digits, '.', '_' or '-'.",
                    context={label: value},
                )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> PipelineConfig:
        """Build a config from the CI environment; non-``None`` overrides win."""
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {
            "registry_id": env.get(ENV_REGISTRY_ID, ""),
            "access_token": env.get(ENV_ACCESS_TOKEN, ""),
        }
        if env.get(ENV_COMMIT):
            values["commit_sha"] = env[ENV_COMMIT]
        if env.get(ENV_TRIGGER):
            values["trigger"] = env[ENV_TRIGGER]
        if env.get(ENV_VARIANT):
            values["variant"] = env[ENV_VARIANT]
        if env.get(ENV_TARGET):
            values["target"] = env[ENV_TARGET]
        if env.get(ENV_BUILD_DIR):
            values["build_dir"] = Path(env[ENV_BUILD_DIR])
        values.update({key: value for key, value in overrides.items() if value is not None})
        for key in ("source_dir", "build_dir", "cache_dir"):
            if key in values and not isinstance(values[key], Path):
                values[key] = Path(values[key])
        return cls(**values)

    @property
    def manifest_path(self) -> Path:
        return self.source_dir / MANIFEST_NAME

    @property
    def lock_path(self) -> Path:
        return self.source_dir / LOCK_NAME

    @property
    def entrypoint_path(self) -> str:
        return f"/{self.binary_name}"

    @property
    def resolved_cache_dir(self) -> Path:
        return self.cache_dir if self.cache_dir is not None else self.build_dir / "cache"

    @property
    def latest_tag(self) -> str:
        return f"{self.tag_prefix}-latest"

    @property
    def credentials(self) -> Credentials:
        return Credentials(registry_id=self.registry_id, token=self.access_token)

    def sha_tag(self, commit: str) -> str:
        return f"{self.tag_prefix}-{commit}"

    def image_ref(self, tag: str) -> ImageRef:
        return ImageRef(
            registry=self.registry_host,
            namespace=self.registry_id,
            repository=self.repository,
            tag=tag,
        )

    def refs_for(self, revision: Revision) -> tuple[ImageRef, ImageRef]:
        """Return the immutable SHA ref and the mutable ``latest`` ref, in push order."""
        return (self.image_ref(self.sha_tag(revision.commit)), self.image_ref(self.latest_tag))

    def build_request(self, revision: Revision, *, source_dir: Path | None = None) -> BuildRequest:
        root = source_dir if source_dir is not None else self.source_dir
        return BuildRequest(
            source_dir=root,
            build_dir=self.build_dir,
            binary_name=self.binary_name,
            target=self.target,
            variant=self.variant,
            commit=revision.commit,
            entrypoint_path=self.entrypoint_path,
            manifest_path=root / MANIFEST_NAME,
            lock_path=root / LOCK_NAME,
            builder_image=self.builder_image,
        )
