"""Emitters for the container build definition and the CI workflow."""

from .emit_dockerfile import (
    VARIANTS,
    DockerfileVariant,
    get_variant,
    render_dockerfile,
    write_dockerfile,
)
from .emit_workflow import render_workflow, write_workflow

__all__ = [
    "DockerfileVariant",
    "VARIANTS",
    "get_variant",
    "render_dockerfile",
    "render_workflow",
    "write_dockerfile",
    "write_workflow",
]
