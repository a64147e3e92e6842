"""Revision resolution for the Checkout state."""

from __future__ import annotations

import re
import shutil
import subprocess
import tempfile
import warnings
from pathlib import Path

from staticship.errors import CheckoutError
from staticship.models import Revision

COMMIT_PATTERN = re.compile(r"^[0-9a-f]{40}$")


class DirtyWorktreeWarning(UserWarning):
    """Warning raised when the source tree differs from the resolved commit."""


def resolve_revision(
    source_dir: str | Path,
    *,
    expected_commit: str | None = None,
    require_clean: bool = False,
) -> Revision:
    """Resolve the commit checked out at *source_dir*."""
    root = Path(source_dir)
    if not root.is_dir():
        raise CheckoutError(
            "Source directory does not exist.",
            context={"operation": "checkout", "path": str(root)},
        )

    commit = _run_git(["rev-parse", "HEAD"], cwd=root)
    if expected_commit is not None and not commit.startswith(expected_commit):
        raise CheckoutError(
            "Checked-out commit does not match the triggering commit.",
            hint="Check out the exact commit that triggered this run.",
            context={
                "operation": "checkout",
                "expected": expected_commit,
                "actual": commit,
            },
        )

    tree_hash = _run_git(["rev-parse", "HEAD^{tree}"], cwd=root)
    dirty = bool(_run_git(["status", "--porcelain", "--untracked-files=no"], cwd=root))
    if dirty:
        if require_clean:
            raise CheckoutError(
                "Work tree has uncommitted changes.",
                hint="Commit or discard local changes; the image is tagged with the commit SHA.",
                context={"operation": "checkout", "path": str(root), "commit": commit},
            )
        warnings.warn(
            f"Work tree at {root} has uncommitted changes; image contents may not match {commit}.",
            DirtyWorktreeWarning,
            stacklevel=2,
        )
    return Revision(commit=commit, tree_hash=tree_hash, dirty=dirty)


def clone_revision(repo: str, *, commit: str, dest: str | Path) -> Revision:
    """Clone *repo* into *dest* and check out the exact *commit*."""
    if not COMMIT_PATTERN.fullmatch(commit):
        raise CheckoutError(
            "Checkout requires a full 40-character commit SHA.",
            hint="Mutable refs cannot identify an immutable image tag.",
            context={"operation": "clone", "repo": repo, "ref": commit},
        )

    dest_path = Path(dest)
    if dest_path.exists():
        shutil.rmtree(dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    temp_root = Path(tempfile.mkdtemp(prefix="staticship-git-", dir=str(dest_path.parent)))
    try:
        _run_git(["clone", "--quiet", "--no-checkout", repo, str(temp_root)])
        _run_git(["checkout", "--quiet", "--detach", commit], cwd=temp_root)
        shutil.move(str(temp_root), dest_path)
    finally:
        if temp_root.exists():
            shutil.rmtree(temp_root, ignore_errors=True)

    return resolve_revision(dest_path, expected_commit=commit, require_clean=True)


def _run_git(argv: list[str], cwd: Path | None = None) -> str:
    command = ["git", *argv]
    try:
        completed = subprocess.run(
            command,
            cwd=cwd,
            check=False,
            text=True,
            capture_output=True,
        )
    except FileNotFoundError as exc:
        raise CheckoutError(
            "git is not installed.",
            hint="Install git and ensure it is in PATH.",
            context={"operation": "checkout"},
        ) from exc
    if completed.returncode != 0:
        raise CheckoutError(
            "Git command failed.",
            hint="Ensure the source directory is a git repository with at least one commit.",
            context={
                "operation": "checkout",
                "argv": " ".join(command),
                "stderr": completed.stderr.strip(),
            },
        )
    return completed.stdout.strip()
