"""Minimal runtime image assembly."""

from .oci import (
    Descriptor,
    ImageInspection,
    LayerEntry,
    assemble_runtime_image,
    build_layer,
    inspect_layout,
    read_blob,
    resolve_tag,
    tag_layout,
    verify_runtime_image,
)

__all__ = [
    "Descriptor",
    "ImageInspection",
    "LayerEntry",
    "assemble_runtime_image",
    "build_layer",
    "inspect_layout",
    "read_blob",
    "resolve_tag",
    "tag_layout",
    "verify_runtime_image",
]
