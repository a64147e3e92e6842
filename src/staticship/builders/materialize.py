"""Filesystem helpers shared by builders and backends."""

from __future__ import annotations

import hashlib
import os
import shutil
import tarfile
import tempfile
from pathlib import Path

from staticship.errors import ReproducibilityError


def sha256_file(path: str | Path) -> str:
    digest = hashlib.sha256()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


def atomic_write_bytes(path: Path, payload: bytes) -> Path:
    """Replace *path* with *payload* through a uniquely named sibling temp file.

    Concurrent writers never share a temp file, so the last ``os.replace`` wins.
    """
    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
    return path


def atomic_copy(source: Path, dest: Path) -> str:
    """Copy *source* over *dest* atomically and return the sha256 of the copy."""
    fd, temp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle, source.open("rb") as src:
            shutil.copyfileobj(src, handle)
        digest = sha256_file(temp_name)
        os.replace(temp_name, dest)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
    return digest


def reset_dir(path: Path) -> Path:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)
    return path


def pack_directory(source: Path, dest: Path) -> Path:
    """Pack *source* into an uncompressed tar at *dest*.

    Modification times are kept as-is; cargo's freshness checks depend on them.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, mode="w") as archive:
        for path in sorted(source.rglob("*")):
            archive.add(path, arcname=str(path.relative_to(source)), recursive=False)
    return dest


def unpack_layer(layer: Path, dest: Path) -> Path:
    """Replace *dest* with the contents of the tar at *layer*."""
    reset_dir(dest)
    with tarfile.open(layer, mode="r") as archive:
        root = dest.resolve()
        for member in archive.getmembers():
            target = (dest / member.name).resolve()
            if not target.is_relative_to(root):
                raise ReproducibilityError(
                    "Cached layer contains a path outside its root.",
                    hint="Invalidate the cache entry and rebuild.",
                    context={"layer": str(layer), "member": member.name},
                )
        archive.extractall(dest, filter="data")
    return dest


def copy_source_tree(source: Path, dest: Path) -> Path:
    shutil.copytree(source, dest, dirs_exist_ok=True)
    return dest
