"""Cargo-flavoured semantic version requirements.

Only what lock verification needs: parsing ``major.minor.patch[-pre][+build]``
versions and matching them against requirement strings such as ``1.2.3``
(caret), ``~1.2``, ``=0.4.1``, ``>=1, <2`` or ``1.*``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from staticship.errors import LockfileError

Op = Literal["=", ">", ">=", "<", "<=", "~", "^", "*"]

_VERSION_RE = re.compile(
    r"^(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_COMPARATOR_RE = re.compile(
    r"^(=|>=|<=|>|<|~|\^)?\s*"
    r"(\d+|[*xX])(?:\.(\d+|[*xX]))?(?:\.(\d+|[*xX]))?"
    r"(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_WILDCARDS = {"*", "x", "X"}

PreKey = tuple[tuple[int, int | str], ...]


def _pre_key(pre: str | None) -> tuple[int, PreKey]:
    if pre is None:
        return (1, ())
    identifiers: list[tuple[int, int | str]] = []
    for part in pre.split("."):
        identifiers.append((0, int(part)) if part.isdigit() else (1, part))
    return (0, tuple(identifiers))


@dataclass(frozen=True, slots=True)
class Version:
    major: int
    minor: int
    patch: int
    pre: str | None = None

    @classmethod
    def parse(cls, text: str) -> Version:
        match = _VERSION_RE.fullmatch(text.strip())
        if match is None:
            raise LockfileError("Invalid semantic version.", context={"version": text})
        major, minor, patch, pre = match.groups()
        return cls(int(major), int(minor), int(patch), pre)

    @property
    def key(self) -> tuple[int, int, int, tuple[int, PreKey]]:
        return (self.major, self.minor, self.patch, _pre_key(self.pre))

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.pre}" if self.pre else base


@dataclass(frozen=True, slots=True)
class Comparator:
    op: Op
    major: int = 0
    minor: int | None = None
    patch: int | None = None
    pre: str | None = None

    @property
    def floor(self) -> Version:
        return Version(self.major, self.minor or 0, self.patch or 0, self.pre)

    def matches(self, version: Version) -> bool:
        if self.op == "*":
            return True
        if self.op == "=":
            return self._matches_exact(version)
        if self.op in (">", ">=", "<", "<="):
            return self._matches_ordering(version)
        if self.op == "~":
            return self._matches_tilde(version)
        return self._matches_caret(version)

    def _matches_exact(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is None:
            return True
        if version.minor != self.minor:
            return False
        if self.patch is None:
            return True
        return version.patch == self.patch and version.pre == self.pre

    def _matches_ordering(self, version: Version) -> bool:
        if self.minor is None:
            lhs: tuple[object, ...] = (version.major,)
            rhs: tuple[object, ...] = (self.major,)
        elif self.patch is None:
            lhs = (version.major, version.minor)
            rhs = (self.major, self.minor)
        else:
            lhs = version.key
            rhs = self.floor.key
        if self.op == ">":
            return lhs > rhs  # type: ignore[operator]
        if self.op == ">=":
            return lhs >= rhs  # type: ignore[operator]
        if self.op == "<":
            return lhs < rhs  # type: ignore[operator]
        return lhs <= rhs  # type: ignore[operator]

    def _matches_tilde(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is None:
            return True
        if version.minor != self.minor:
            return False
        return version.key >= self.floor.key

    def _matches_caret(self, version: Version) -> bool:
        if version.major != self.major:
            return False
        if self.minor is None:
            return True
        if self.major > 0:
            return version.key >= self.floor.key
        if version.minor != self.minor:
            return False
        if self.minor > 0:
            return version.key >= self.floor.key
        if self.patch is None:
            return True
        return version.patch == self.patch and version.key >= self.floor.key


@dataclass(frozen=True, slots=True)
class VersionReq:
    comparators: tuple[Comparator, ...]

    @classmethod
    def parse(cls, text: str) -> VersionReq:
        parts = [part.strip() for part in text.split(",")]
        if not parts or any(not part for part in parts):
            raise LockfileError("Invalid version requirement.", context={"requirement": text})
        return cls(tuple(_parse_comparator(part, original=text) for part in parts))

    def matches(self, version: Version | str) -> bool:
        if isinstance(version, str):
            version = Version.parse(version)
        if not all(comparator.matches(version) for comparator in self.comparators):
            return False
        if version.pre is None:
            return True
        return any(
            comparator.pre is not None
            and (comparator.major, comparator.minor, comparator.patch)
            == (version.major, version.minor, version.patch)
            for comparator in self.comparators
        )


def _parse_comparator(text: str, *, original: str) -> Comparator:
    match = _COMPARATOR_RE.fullmatch(text)
    if match is None:
        raise LockfileError("Invalid version requirement.", context={"requirement": original})
    op, major, minor, patch, pre = match.groups()

    if major in _WILDCARDS:
        if op is not None or minor is not None or patch is not None:
            raise LockfileError("Invalid wildcard requirement.", context={"requirement": original})
        return Comparator(op="*")

    wildcard = False
    parsed_minor: int | None = None
    parsed_patch: int | None = None
    if minor is not None:
        if minor in _WILDCARDS:
            wildcard = True
        else:
            parsed_minor = int(minor)
    if patch is not None:
        if patch in _WILDCARDS:
            wildcard = True
        elif wildcard:
            raise LockfileError("Invalid wildcard requirement.", context={"requirement": original})
        else:
            parsed_patch = int(patch)

    if wildcard and op is None:
        op = "="
    return Comparator(
        op=op or "^",  # type: ignore[arg-type]
        major=int(major),
        minor=parsed_minor,
        patch=parsed_patch,
        pre=pre if parsed_patch is not None else None,
    )
