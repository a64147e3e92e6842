import subprocess
from pathlib import Path
from typing import Any

import pytest

from conftest import FakeCargo
from staticship.backends import DockerBackend, NativeBackend, get_backend
from staticship.config import PipelineConfig
from staticship.errors import (
    BackendExecutionError,
    CompilationError,
    DependencyResolutionError,
    ValidationError,
)
from staticship.image import inspect_layout, resolve_tag
from staticship.models import BuildRequest, BuiltImage, ImageRef, Revision

COMMIT = "0123456789abcdef0123456789abcdef01234567"


def test_native_backend_builds_scratch_image(crate: Path, tmp_path: Path, fake_cargo: FakeCargo) -> None:
    backend = NativeBackend(cache_dir=tmp_path / "cache")
    request = _request(crate, tmp_path)

    backend.prepare(request)
    image = backend.build(request)

    assert image.kind == "oci"
    assert image.layout_path == request.layout_dir
    assert image.dependency_layer is not None
    assert image.dependency_layer.cache_hit is False
    inspection = inspect_layout(request.layout_dir, image.digest)
    assert [entry.path for entry in inspection.files] == ["ligmir"]
    assert inspection.labels["org.opencontainers.image.revision"] == COMMIT


def test_native_backend_reuses_dependency_layer_when_lock_unchanged(
    crate: Path,
    tmp_path: Path,
    fake_cargo: FakeCargo,
) -> None:
    backend = NativeBackend(cache_dir=tmp_path / "cache")

    first = backend.build(_request(crate, tmp_path))
    (crate / "src" / "main.rs").write_text('fn main() { println!("v2"); }\n', encoding="utf-8")
    second = backend.build(_request(crate, tmp_path))

    assert first.dependency_layer is not None and second.dependency_layer is not None
    assert second.dependency_layer.cache_hit is True
    assert second.dependency_layer.digest == first.dependency_layer.digest
    assert len(fake_cargo.commands("build")) == 1
    assert fake_cargo.deps_present_at_install == [True, True]
    assert second.digest != first.digest


def test_native_backend_installs_target_when_dependency_layer_is_restored(
    crate: Path,
    tmp_path: Path,
    fake_cargo: FakeCargo,
) -> None:
    cache_dir = tmp_path / "cache"
    NativeBackend(cache_dir=cache_dir).build(_request(crate, tmp_path / "first"))
    fake_cargo.calls.clear()

    request = _request(crate, tmp_path / "second")
    image = NativeBackend(cache_dir=cache_dir).build(request)

    assert image.dependency_layer is not None and image.dependency_layer.cache_hit is True
    target_add = ["rustup", "target", "add", request.target]
    install = fake_cargo.commands("install")[0]
    assert target_add in fake_cargo.calls
    assert fake_cargo.calls.index(target_add) < fake_cargo.calls.index(install)
    assert fake_cargo.commands("build") == []


def test_native_backend_rebuilds_dependencies_when_lock_changes(
    crate: Path,
    tmp_path: Path,
    fake_cargo: FakeCargo,
) -> None:
    backend = NativeBackend(cache_dir=tmp_path / "cache")

    first = backend.build(_request(crate, tmp_path))
    lock = crate / "Cargo.lock"
    lock.write_text(lock.read_text(encoding="utf-8").replace("1.2.3", "1.4.0"), encoding="utf-8")
    second = backend.build(_request(crate, tmp_path))

    assert first.dependency_layer is not None and second.dependency_layer is not None
    assert second.dependency_layer.cache_hit is False
    assert second.dependency_layer.key != first.dependency_layer.key
    assert len(fake_cargo.commands("build")) == 2


def test_native_backend_rejects_unsatisfiable_lock(crate: Path, tmp_path: Path, fake_cargo: FakeCargo) -> None:
    manifest = crate / "Cargo.toml"
    manifest.write_text(manifest.read_text(encoding="utf-8").replace('"1.2.3"', '"2.0"'), encoding="utf-8")

    with pytest.raises(DependencyResolutionError):
        NativeBackend(cache_dir=tmp_path / "cache").build(_request(crate, tmp_path))
    assert fake_cargo.calls == []


def test_native_backend_compile_error_leaves_no_image(crate: Path, tmp_path: Path, fake_cargo: FakeCargo) -> None:
    (crate / "src" / "main.rs").write_text('compile_error!("broken");\n', encoding="utf-8")
    request = _request(crate, tmp_path)

    with pytest.raises(CompilationError):
        NativeBackend(cache_dir=tmp_path / "cache").build(request)
    assert not request.layout_dir.exists()


def test_native_backend_rejects_non_scratch_variant(crate: Path, tmp_path: Path) -> None:
    with pytest.raises(ValidationError, match="scratch"):
        NativeBackend(cache_dir=tmp_path / "cache").prepare(_request(crate, tmp_path, variant="alpine"))


def test_native_backend_tags_layout(crate: Path, tmp_path: Path, fake_cargo: FakeCargo) -> None:
    backend = NativeBackend(cache_dir=tmp_path / "cache")
    request = _request(crate, tmp_path)
    image = backend.build(request)

    backend.tag(image, (_ref(f"ligmir-{COMMIT}"), _ref("ligmir-latest")))

    assert resolve_tag(request.layout_dir, f"ligmir-{COMMIT}") == image.digest
    assert resolve_tag(request.layout_dir, "ligmir-latest") == image.digest


def test_docker_backend_requires_docker(crate: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("staticship.backends.docker.shutil.which", lambda _: None)

    with pytest.raises(BackendExecutionError, match="docker"):
        DockerBackend().prepare(_request(crate, tmp_path))


def test_docker_backend_renders_dockerfile_and_builds(
    crate: Path,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    image_id = "sha256:" + "f" * 64
    calls = _patch_docker(monkeypatch, returncode=0, iid=image_id)
    request = _request(crate, tmp_path, variant="alpine")
    backend = DockerBackend()

    backend.prepare(request)
    image = backend.build(request)

    dockerfile = tmp_path / "build" / "Dockerfile"
    assert "FROM alpine" in dockerfile.read_text(encoding="utf-8")
    assert calls[0][:5] == ["docker", "build", str(crate), "--file", str(dockerfile)]
    assert f"org.opencontainers.image.revision={COMMIT}" in calls[0]
    assert image == BuiltImage(kind="docker", digest=image_id, variant="alpine")


def test_docker_backend_rejects_unsatisfiable_lock_before_building(
    crate: Path,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls = _patch_docker(monkeypatch, returncode=0, iid="sha256:" + "f" * 64)
    manifest = crate / "Cargo.toml"
    manifest.write_text(manifest.read_text(encoding="utf-8").replace('"1.2.3"', '"2.0"'), encoding="utf-8")
    request = _request(crate, tmp_path)

    with pytest.raises(DependencyResolutionError):
        DockerBackend().prepare(request)

    assert calls == []
    assert not (request.build_dir / "Dockerfile").exists()


def test_docker_backend_build_failure_is_compilation_error(
    crate: Path,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _patch_docker(monkeypatch, returncode=1, stderr="error: could not compile `ligmir`")
    request = _request(crate, tmp_path)
    backend = DockerBackend()
    backend.prepare(request)

    with pytest.raises(CompilationError) as excinfo:
        backend.build(request)

    assert "could not compile" in excinfo.value.context["stderr"]


def test_docker_backend_tags_each_ref(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _patch_docker(monkeypatch, returncode=0)
    image = BuiltImage(kind="docker", digest="sha256:" + "f" * 64, variant="scratch")

    DockerBackend().tag(image, (_ref("ligmir-abc1234"), _ref("ligmir-latest")))

    assert calls == [
        ["docker", "tag", image.digest, "registry.digitalocean.com/acme/image:ligmir-abc1234"],
        ["docker", "tag", image.digest, "registry.digitalocean.com/acme/image:ligmir-latest"],
    ]


def test_get_backend_returns_correct_types(tmp_path: Path) -> None:
    assert isinstance(get_backend("native", cache_dir=tmp_path), NativeBackend)
    assert isinstance(get_backend("docker"), DockerBackend)
    with pytest.raises(ValidationError):
        get_backend("native")
    with pytest.raises(ValidationError):
        get_backend("podman")


def _request(crate: Path, tmp_path: Path, *, variant: str = "scratch") -> BuildRequest:
    config = PipelineConfig(
        registry_id="acme",
        source_dir=crate,
        build_dir=tmp_path / "build",
        variant=variant,  # type: ignore[arg-type]
    )
    return config.build_request(Revision(commit=COMMIT))


def _ref(tag: str) -> ImageRef:
    return ImageRef(registry="registry.digitalocean.com", namespace="acme", repository="image", tag=tag)


def _patch_docker(
    monkeypatch: pytest.MonkeyPatch,
    *,
    returncode: int,
    iid: str | None = None,
    stderr: str = "",
) -> list[list[str]]:
    calls: list[list[str]] = []

    def _run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        calls.append(cmd)
        if iid is not None and "--iidfile" in cmd:
            Path(cmd[cmd.index("--iidfile") + 1]).write_text(iid, encoding="utf-8")
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr=stderr)

    monkeypatch.setattr("staticship.backends.docker.shutil.which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr("staticship.backends.docker.subprocess.run", _run)
    return calls
