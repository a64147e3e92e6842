"""Shared test fixtures.

``fake_cargo`` stands in for the Rust toolchain: ``cargo`` and ``rustup``
invocations are answered in-process, every other command (git, mostly) runs
for real.
"""

from __future__ import annotations

import hashlib
import subprocess
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import pytest

_REAL_RUN = subprocess.run

CARGO_TOML = """\
[package]
name = "ligmir"
version = "0.1.0"
edition = "2021"

[dependencies]
foo = "1.2.3"
"""

CARGO_LOCK = """\
# This file is automatically @generated by Cargo.
# It is not intended for manual editing.
version = 3

[[package]]
name = "foo"
version = "1.2.3"
source = "registry+https://github.com/rust-lang/crates.io-index"
checksum = "8f3b9c0d0f1e6a7b2c4d5e6f708192a3b4c5d6e7f8091a2b3c4d5e6f708192a3"

[[package]]
name = "ligmir"
version = "0.1.0"
dependencies = [
 "foo",
]
"""

MAIN_RS = """\
fn main() {
    println!("ligmir");
}
"""


@dataclass(slots=True)
class FakeCargo:
    calls: list[list[str]] = field(default_factory=list)
    fail_dependencies: bool = False
    deps_present_at_install: list[bool] = field(default_factory=list)

    def commands(self, subcommand: str) -> list[list[str]]:
        return [cmd for cmd in self.calls if len(cmd) > 1 and cmd[1] == subcommand]

    def __call__(self, cmd, *args, **kwargs):  # type: ignore[no-untyped-def]
        argv = [str(part) for part in cmd]
        if argv[0] not in ("cargo", "rustup"):
            return _REAL_RUN(cmd, *args, **kwargs)

        self.calls.append(argv)
        cwd = Path(kwargs["cwd"]) if kwargs.get("cwd") else None
        env = kwargs.get("env") or {}
        if argv[0] == "rustup":
            return _completed(argv)
        if argv[1] == "--version":
            return _completed(argv, stdout="cargo 1.80.0 (fake 2024-07-01)\n")
        if argv[1] == "build":
            return self._build(argv, cwd, env)
        if argv[1] == "install":
            return self._install(argv, cwd, env)
        return _completed(argv, returncode=1, stderr=f"unsupported fake cargo command: {argv}")

    def _build(self, argv: list[str], cwd: Path | None, env: dict[str, str]):  # type: ignore[no-untyped-def]
        assert cwd is not None
        assert (cwd / "src" / "lib.rs").read_text(encoding="utf-8") == ""
        if self.fail_dependencies:
            return _completed(argv, returncode=101, stderr="error: failed to select a version for `foo`")
        lock_hash = hashlib.sha256((cwd / "Cargo.lock").read_bytes()).hexdigest()[:16]
        rlib = _deps_dir(env, argv) / f"libfoo-{lock_hash}.rlib"
        rlib.parent.mkdir(parents=True, exist_ok=True)
        rlib.write_bytes(b"rlib:" + lock_hash.encode())
        return _completed(argv, stderr="   Compiling foo v1.2.3\n    Finished release\n")

    def _install(self, argv: list[str], cwd: Path | None, env: dict[str, str]):  # type: ignore[no-untyped-def]
        assert cwd is not None
        deps_dir = _deps_dir(env, argv)
        self.deps_present_at_install.append(deps_dir.is_dir() and any(deps_dir.glob("libfoo-*.rlib")))

        sources = sorted((cwd / "src").rglob("*.rs"))
        text = "".join(path.read_text(encoding="utf-8") for path in sources)
        if "compile_error!" in text:
            return _completed(argv, returncode=101, stderr="error: could not compile `ligmir`\n")

        name = tomllib.loads((cwd / "Cargo.toml").read_text(encoding="utf-8"))["package"]["name"]
        root = Path(argv[argv.index("--root") + 1])
        binary = root / "bin" / name
        binary.parent.mkdir(parents=True, exist_ok=True)
        digest = hashlib.sha256(text.encode() + (cwd / "Cargo.lock").read_bytes()).digest()
        binary.write_bytes(b"\x7fELF" + digest)
        binary.chmod(0o755)
        return _completed(argv, stderr=f"  Installing {binary}\n")


@pytest.fixture
def fake_cargo(monkeypatch: pytest.MonkeyPatch) -> FakeCargo:
    fake = FakeCargo()
    monkeypatch.setattr("staticship.builders.rust.subprocess.run", fake)
    return fake


@pytest.fixture
def crate(tmp_path: Path) -> Path:
    """A committed crate depending on foo@1.2.3."""
    root = tmp_path / "crate"
    write_crate(root)
    init_repo(root)
    return root


def write_crate(root: Path, *, main_rs: str = MAIN_RS) -> Path:
    (root / "src").mkdir(parents=True, exist_ok=True)
    (root / "Cargo.toml").write_text(CARGO_TOML, encoding="utf-8")
    (root / "Cargo.lock").write_text(CARGO_LOCK, encoding="utf-8")
    (root / "src" / "main.rs").write_text(main_rs, encoding="utf-8")
    return root


def init_repo(path: Path) -> str:
    run_git(["init"], cwd=path)
    run_git(["checkout", "-b", "main"], cwd=path)
    run_git(["config", "user.email", "ci@example.com"], cwd=path)
    run_git(["config", "user.name", "CI Test"], cwd=path)
    return commit_all(path, "initial")


def commit_all(path: Path, message: str) -> str:
    run_git(["add", "-A"], cwd=path)
    run_git(["commit", "-m", message], cwd=path)
    return run_git(["rev-parse", "HEAD"], cwd=path)


def run_git(argv: list[str], *, cwd: Path) -> str:
    completed = _REAL_RUN(
        ["git", *argv],
        cwd=cwd,
        check=False,
        text=True,
        capture_output=True,
    )
    if completed.returncode != 0:
        raise RuntimeError(f"git {' '.join(argv)} failed: {completed.stderr.strip()}")
    return completed.stdout.strip()


def _deps_dir(env: dict[str, str], argv: list[str]) -> Path:
    target = argv[argv.index("--target") + 1]
    return Path(env["CARGO_TARGET_DIR"]) / target / "release" / "deps"


def _completed(
    argv: list[str],
    *,
    returncode: int = 0,
    stdout: str = "",
    stderr: str = "",
) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(argv, returncode, stdout=stdout, stderr=stderr)
