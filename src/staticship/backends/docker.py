"""Docker daemon backend.

Renders the multi-stage Dockerfile for the requested variant and lets the
daemon's layer cache provide dependency layer reuse.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from staticship.compiler import write_dockerfile
from staticship.errors import BackendExecutionError, CompilationError, stderr_tail
from staticship.image.oci import REVISION_LABEL
from staticship.lockfile import read_lock, read_manifest, verify_lock
from staticship.models import BuildRequest, BuiltImage, ImageRef

DOCKERFILE_NAME = "Dockerfile"
IIDFILE_NAME = "image.iid"


@dataclass(slots=True)
class DockerBackend:
    name: str = "docker"
    docker: str = "docker"
    build_args: list[str] = field(default_factory=list)

    def dockerfile_path(self, request: BuildRequest) -> Path:
        return request.build_dir / DOCKERFILE_NAME

    def prepare(self, request: BuildRequest) -> None:
        if shutil.which(self.docker) is None:
            raise BackendExecutionError(
                "Docker backend requires `docker` in PATH.",
                hint="Install docker or use the native backend.",
                context={"backend": self.name, "operation": "prepare"},
            )
        # A lock the manifest cannot accept fails here, before the daemon compiles anything.
        verify_lock(read_manifest(request.manifest_path), read_lock(request.lock_path))
        write_dockerfile(
            self.dockerfile_path(request),
            binary_name=request.binary_name,
            target=request.target,
            variant=request.variant,
            builder_image=request.builder_image,
        )

    def build(self, request: BuildRequest) -> BuiltImage:
        iidfile = request.build_dir / IIDFILE_NAME
        iidfile.unlink(missing_ok=True)
        cmd = [
            self.docker,
            "build",
            str(request.source_dir),
            "--file",
            str(self.dockerfile_path(request)),
            "--iidfile",
            str(iidfile),
            "--label",
            f"{REVISION_LABEL}={request.commit}",
            *self.build_args,
        ]
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            raise CompilationError(
                "docker build failed.",
                hint="Check the build output for cargo errors.",
                context={
                    "backend": self.name,
                    "operation": "build",
                    "returncode": str(result.returncode),
                    "stderr": stderr_tail(result.stderr),
                    "command": " ".join(cmd),
                },
            )
        if not iidfile.exists():
            raise BackendExecutionError(
                "docker build did not write an image id.",
                context={"backend": self.name, "operation": "build", "iidfile": str(iidfile)},
            )
        return BuiltImage(
            kind="docker",
            digest=iidfile.read_text(encoding="utf-8").strip(),
            variant=request.variant,
        )

    def tag(self, image: BuiltImage, refs: Sequence[ImageRef]) -> None:
        for ref in refs:
            cmd = [self.docker, "tag", image.digest, str(ref)]
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
            if result.returncode != 0:
                raise BackendExecutionError(
                    "docker tag failed.",
                    context={
                        "backend": self.name,
                        "operation": "tag",
                        "ref": str(ref),
                        "returncode": str(result.returncode),
                        "stderr": stderr_tail(result.stderr),
                        "command": " ".join(cmd),
                    },
                )
