"""Host-toolchain backend producing an OCI layout without a container daemon.

The dependency stage output is memoized in a :class:`LayerCacheStore` keyed
on the manifest/lock digests plus toolchain and target, which gives the same
reuse guarantee as a cached ``COPY Cargo.toml Cargo.lock`` image layer.
"""

from __future__ import annotations

import dataclasses
import shutil
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from staticship.builders import Builder, BuildSpec, RustBuilder
from staticship.builders.materialize import pack_directory, reset_dir, unpack_layer
from staticship.cache import DependencyCacheInput, LayerCacheStore, cache_key
from staticship.errors import BackendExecutionError, ValidationError
from staticship.image import assemble_runtime_image, tag_layout
from staticship.lockfile import file_digest, read_lock, read_manifest, verify_lock
from staticship.models import BuildRequest, BuiltImage, DependencyLayer, ImageRef


@dataclass(slots=True)
class NativeBackend:
    cache_dir: Path
    builder: Builder = field(default_factory=RustBuilder)
    name: str = "native"

    def prepare(self, request: BuildRequest) -> None:
        if not sys.platform.startswith("linux"):
            raise BackendExecutionError(
                "Native backend requires a Linux host.",
                hint="Use the docker backend on non-Linux systems.",
                context={"backend": self.name, "operation": "prepare"},
            )
        if request.variant != "scratch":
            raise ValidationError(
                "Native backend only assembles scratch runtime images.",
                hint="Use the docker backend for the alpine and debian variants.",
                context={"backend": self.name, "variant": request.variant},
            )
        for path in (request.work_dir, Path(self.cache_dir)):
            path.mkdir(parents=True, exist_ok=True)

    def build(self, request: BuildRequest) -> BuiltImage:
        spec = BuildSpec.from_request(request)

        manifest = read_manifest(request.manifest_path)
        lock = read_lock(request.lock_path)
        verify_lock(manifest, lock)
        manifest_sha256 = file_digest(request.manifest_path)
        lock_sha256 = file_digest(request.lock_path)

        # Both stages compile for the target, including when the dependency layer is restored.
        self.builder.ensure_target(spec)
        dependency_layer = self._dependency_layer(
            spec,
            manifest_sha256=manifest_sha256,
            lock_sha256=lock_sha256,
        )
        binary = self.builder.build_release(
            spec,
            manifest_sha256=manifest_sha256,
            lock_sha256=lock_sha256,
        )
        image = assemble_runtime_image(
            binary,
            layout_dir=request.layout_dir,
            entrypoint_path=request.entrypoint_path,
            target=request.target,
            revision=request.commit,
        )
        return dataclasses.replace(image, dependency_layer=dependency_layer)

    def tag(self, image: BuiltImage, refs: Sequence[ImageRef]) -> None:
        if image.layout_path is None:
            raise BackendExecutionError(
                "Native backend can only tag OCI layouts.",
                context={"backend": self.name, "operation": "tag", "digest": image.digest},
            )
        tag_layout(image.layout_path, image.digest, (ref.tag for ref in refs))

    def _dependency_layer(
        self,
        spec: BuildSpec,
        *,
        manifest_sha256: str,
        lock_sha256: str,
    ) -> DependencyLayer:
        store = LayerCacheStore(self.cache_dir)
        inputs = DependencyCacheInput(
            manifest_sha256=manifest_sha256,
            lock_sha256=lock_sha256,
            toolchain=self.builder.toolchain_version(),
            target=spec.target,
            flags=spec.flags,
        )
        key = cache_key(inputs)

        cached = store.load(key=key, expected_inputs=inputs)
        cache_hit = cached is not None
        if cached is None:
            reset_dir(spec.target_dir)
            self.builder.prebuild_dependencies(spec)
            packed = pack_directory(spec.target_dir, spec.work_dir / "deps-layer.tar")
            cached = store.save(inputs=inputs, layer=packed)
            packed.unlink()
            shutil.rmtree(spec.deps_dir, ignore_errors=True)
        else:
            unpack_layer(cached.path, spec.target_dir)

        return DependencyLayer(
            key=key,
            digest=f"sha256:{cached.digest}",
            path=cached.path,
            cache_hit=cache_hit,
        )
