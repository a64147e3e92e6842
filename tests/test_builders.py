import io
import tarfile
from pathlib import Path

import pytest

from conftest import FakeCargo
from staticship.builders import BuildSpec, RustBuilder
from staticship.builders.materialize import pack_directory, sha256_file, unpack_layer
from staticship.errors import (
    BackendExecutionError,
    CompilationError,
    DependencyResolutionError,
    ReproducibilityError,
)

TARGET = "x86_64-unknown-linux-musl"


def test_prebuild_compiles_dependencies_against_placeholder_lib(
    crate: Path,
    tmp_path: Path,
    fake_cargo: FakeCargo,
) -> None:
    spec = _spec(crate, tmp_path)

    RustBuilder().prebuild_dependencies(spec)

    (command,) = fake_cargo.commands("build")
    assert command == ["cargo", "build", "--locked", "--lib", "--release", "--target", TARGET]
    assert (spec.deps_dir / "Cargo.lock").read_bytes() == (crate / "Cargo.lock").read_bytes()
    assert not (spec.deps_dir / "src" / "main.rs").exists()
    assert list((spec.target_dir / TARGET / "release" / "deps").glob("libfoo-*.rlib"))


def test_prebuild_failure_is_dependency_resolution_error(
    crate: Path,
    tmp_path: Path,
    fake_cargo: FakeCargo,
) -> None:
    fake_cargo.fail_dependencies = True

    with pytest.raises(DependencyResolutionError) as excinfo:
        RustBuilder().prebuild_dependencies(_spec(crate, tmp_path))

    assert excinfo.value.context["returncode"] == "101"
    assert "failed to select a version" in excinfo.value.context["stderr"]


def test_build_release_installs_locked_static_binary(
    crate: Path,
    tmp_path: Path,
    fake_cargo: FakeCargo,
) -> None:
    spec = _spec(crate, tmp_path)

    artifact = RustBuilder().build_release(spec, **_digests(crate))

    (command,) = fake_cargo.commands("install")
    assert command[:5] == ["cargo", "install", "--locked", "--path", "."]
    assert command[-2:] == ["--target", TARGET]
    assert artifact.path == spec.install_root / "bin" / "ligmir"
    assert artifact.sha256 == sha256_file(artifact.path)
    assert artifact.size == artifact.path.stat().st_size
    assert artifact.target == TARGET


def test_build_release_is_deterministic_for_same_sources(
    crate: Path,
    tmp_path: Path,
    fake_cargo: FakeCargo,
) -> None:
    builder = RustBuilder()

    first = builder.build_release(_spec(crate, tmp_path / "a"), **_digests(crate))
    second = builder.build_release(_spec(crate, tmp_path / "b"), **_digests(crate))

    assert first.sha256 == second.sha256


def test_build_release_compile_error_is_compilation_error(
    crate: Path,
    tmp_path: Path,
    fake_cargo: FakeCargo,
) -> None:
    (crate / "src" / "main.rs").write_text('compile_error!("broken");\n', encoding="utf-8")

    with pytest.raises(CompilationError, match="Release build failed"):
        RustBuilder().build_release(_spec(crate, tmp_path), **_digests(crate))


def test_build_release_rejects_manifest_drift(
    crate: Path,
    tmp_path: Path,
    fake_cargo: FakeCargo,
) -> None:
    digests = _digests(crate)
    (crate / "Cargo.lock").write_text("version = 3\n", encoding="utf-8")

    with pytest.raises(ReproducibilityError, match="changed between"):
        RustBuilder().build_release(_spec(crate, tmp_path), **digests)
    assert fake_cargo.commands("install") == []


def test_missing_toolchain_is_backend_execution_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _missing(*args: object, **kwargs: object) -> None:
        raise FileNotFoundError("cargo")

    monkeypatch.setattr("staticship.builders.rust.subprocess.run", _missing)

    with pytest.raises(BackendExecutionError, match="Build tool not found"):
        RustBuilder().toolchain_version()


def test_pack_and_unpack_preserve_tree(tmp_path: Path) -> None:
    source = tmp_path / "target"
    (source / "release" / "deps").mkdir(parents=True)
    (source / "release" / "deps" / "libfoo.rlib").write_bytes(b"rlib")

    layer = pack_directory(source, tmp_path / "layer.tar")
    restored = unpack_layer(layer, tmp_path / "restored")

    assert (restored / "release" / "deps" / "libfoo.rlib").read_bytes() == b"rlib"


def test_unpack_rejects_paths_outside_root(tmp_path: Path) -> None:
    layer = tmp_path / "evil.tar"
    with tarfile.open(layer, mode="w") as archive:
        info = tarfile.TarInfo("../escape.txt")
        info.size = 4
        archive.addfile(info, io.BytesIO(b"evil"))

    with pytest.raises(ReproducibilityError, match="outside its root"):
        unpack_layer(layer, tmp_path / "restored")
    assert not (tmp_path / "escape.txt").exists()


def _spec(crate: Path, work_root: Path) -> BuildSpec:
    return BuildSpec(
        name="ligmir",
        manifest_path=crate / "Cargo.toml",
        lock_path=crate / "Cargo.lock",
        source_dir=crate,
        target=TARGET,
        work_dir=work_root / "work",
    )


def _digests(crate: Path) -> dict[str, str]:
    return {
        "manifest_sha256": sha256_file(crate / "Cargo.toml"),
        "lock_sha256": sha256_file(crate / "Cargo.lock"),
    }
