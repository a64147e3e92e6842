"""Protocol for build execution backends."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from staticship.models import BuildRequest, BuiltImage, ImageRef


class BuildBackend(Protocol):
    name: str

    def prepare(self, request: BuildRequest) -> None:
        """Check tools and create the directories the build writes to."""

    def build(self, request: BuildRequest) -> BuiltImage:
        """Run the dependency, application and runtime stages in order."""

    def tag(self, image: BuiltImage, refs: Sequence[ImageRef]) -> None:
        """Attach each of *refs* to the built image without rebuilding it."""
