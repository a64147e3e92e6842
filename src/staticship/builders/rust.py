"""Rust builder.

Splits a release build into the two stages of the layered container build:
a dependency-only compile against a placeholder ``src/lib.rs`` and the real
``cargo install`` of the source tree, both sharing one ``CARGO_TARGET_DIR``.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from staticship.builders.base import BuildSpec
from staticship.builders.materialize import copy_source_tree, reset_dir, sha256_file
from staticship.errors import (
    BackendExecutionError,
    CompilationError,
    DependencyResolutionError,
    ReproducibilityError,
    StaticshipError,
    stderr_tail,
)
from staticship.models import BinaryArtifact

SOURCE_DIR_NAME = "src"


@dataclass(slots=True)
class RustBuilder:
    name: str = "rust"
    tool: str = "cargo"
    rustup: str = "rustup"
    install_target: bool = True

    def toolchain_version(self) -> str:
        completed = self._run(
            (self.tool, "--version"),
            cwd=None,
            env=None,
            error=BackendExecutionError,
            message="Unable to query the cargo toolchain version.",
            hint="Ensure a working Rust toolchain is installed.",
        )
        return completed.stdout.strip()

    def ensure_target(self, spec: BuildSpec) -> None:
        if not self.install_target:
            return
        self._run(
            (self.rustup, "target", "add", spec.target),
            cwd=None,
            env=None,
            error=BackendExecutionError,
            message="Unable to install the Rust target.",
            hint="Check rustup connectivity or preinstall the target.",
        )

    def dependency_command(self, spec: BuildSpec) -> tuple[str, ...]:
        return (
            self.tool,
            "build",
            "--locked",
            "--lib",
            "--release",
            "--target",
            spec.target,
            *spec.flags,
        )

    def install_command(self, spec: BuildSpec) -> tuple[str, ...]:
        return (
            self.tool,
            "install",
            "--locked",
            "--path",
            ".",
            "--root",
            str(spec.install_root),
            "--target",
            spec.target,
            *spec.flags,
        )

    def prebuild_dependencies(self, spec: BuildSpec) -> None:
        deps_dir = reset_dir(spec.deps_dir)
        shutil.copy2(spec.manifest_path, deps_dir / "Cargo.toml")
        shutil.copy2(spec.lock_path, deps_dir / "Cargo.lock")
        (deps_dir / SOURCE_DIR_NAME).mkdir()
        (deps_dir / SOURCE_DIR_NAME / "lib.rs").touch()

        self._run(
            self.dependency_command(spec),
            cwd=deps_dir,
            env=self._cargo_env(spec),
            error=DependencyResolutionError,
            message="Dependency build failed.",
            hint="Check that Cargo.lock resolves and every locked crate compiles.",
        )

    def build_release(
        self,
        spec: BuildSpec,
        *,
        manifest_sha256: str,
        lock_sha256: str,
    ) -> BinaryArtifact:
        expected_digests = ((spec.manifest_path, manifest_sha256), (spec.lock_path, lock_sha256))
        for path, expected in expected_digests:
            actual = sha256_file(path)
            if actual != expected:
                raise ReproducibilityError(
                    "Manifest/lock changed between the dependency and release builds.",
                    hint="Keep Cargo.toml and Cargo.lock unchanged for the whole run.",
                    context={"path": str(path), "expected": expected, "actual": actual},
                )

        source_tree = spec.source_dir / SOURCE_DIR_NAME
        if not source_tree.is_dir():
            raise CompilationError(
                "Source tree not found.",
                hint="The crate sources must live under `src/` next to Cargo.toml.",
                context={"path": str(source_tree)},
            )

        app_dir = reset_dir(spec.app_dir)
        shutil.copy2(spec.manifest_path, app_dir / "Cargo.toml")
        shutil.copy2(spec.lock_path, app_dir / "Cargo.lock")
        copy_source_tree(source_tree, app_dir / SOURCE_DIR_NAME)
        reset_dir(spec.install_root)

        self._run(
            self.install_command(spec),
            cwd=app_dir,
            env=self._cargo_env(spec),
            error=CompilationError,
            message="Release build failed.",
            hint="Fix the compile errors reported by cargo.",
        )

        binary_path = spec.install_root / "bin" / spec.name
        if not binary_path.is_file():
            raise CompilationError(
                "Release build did not produce the expected binary.",
                hint="The crate must define a binary target named after the package.",
                context={"expected_path": str(binary_path)},
            )
        return BinaryArtifact(
            name=spec.name,
            path=binary_path,
            target=spec.target,
            sha256=sha256_file(binary_path),
            size=binary_path.stat().st_size,
        )

    def _cargo_env(self, spec: BuildSpec) -> dict[str, str]:
        return {**os.environ, **spec.env, "CARGO_TARGET_DIR": str(spec.target_dir)}

    def _run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None,
        env: dict[str, str] | None,
        error: Callable[..., StaticshipError],
        message: str,
        hint: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            completed = subprocess.run(
                list(command),
                cwd=str(cwd) if cwd is not None else None,
                env=env,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise BackendExecutionError(
                f"Build tool not found: {command[0]}",
                hint="Install the Rust toolchain (cargo, rustup) and ensure it is in PATH.",
                context={"builder": self.name, "command": " ".join(command)},
            ) from exc

        if completed.returncode != 0:
            raise error(
                message,
                hint=hint,
                context={
                    "builder": self.name,
                    "returncode": str(completed.returncode),
                    "stderr": stderr_tail(completed.stderr),
                    "command": " ".join(command),
                },
            )
        return completed
