"""Registry adapter protocol."""

from __future__ import annotations

from typing import Protocol

from staticship.models import BuiltImage, Credentials, ImageRef, PushRecord


class Registry(Protocol):
    name: str

    def login(self, credentials: Credentials) -> None:
        """Exchange the stored access credential for a registry session."""

    def push(self, image: BuiltImage, ref: ImageRef) -> PushRecord:
        """Upload *image* under the single tag named by *ref*."""
