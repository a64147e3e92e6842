"""Multi-stage Dockerfile emission.

Every variant shares the same three-stage shape:

1. toolchain setup plus a dependency-only compile against an empty
   ``src/lib.rs``, keyed by ``Cargo.toml``/``Cargo.lock`` alone so the layer
   is reused while the manifest/lock pair is unchanged,
2. ``COPY src`` and a locked ``cargo install`` of the static binary,
3. a runtime stage that copies only the binary and runs it as PID 1.

Variants differ only in the builder and runtime base images.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from staticship.config import DEFAULT_BINARY_NAME
from staticship.errors import ValidationError
from staticship.models import DEFAULT_TARGET, RuntimeVariant, TargetTriple


@dataclass(frozen=True, slots=True)
class DockerfileVariant:
    name: RuntimeVariant
    builder_image: str
    runtime_image: str
    toolchain_setup: str


_APT_MUSL = "apt-get update && \\\n  apt-get install -y musl-tools"
_APK_MUSL = "apk add --no-cache musl-dev"

VARIANTS: dict[RuntimeVariant, DockerfileVariant] = {
    "scratch": DockerfileVariant(
        name="scratch",
        builder_image="rust",
        runtime_image="scratch",
        toolchain_setup=_APT_MUSL,
    ),
    "alpine": DockerfileVariant(
        name="alpine",
        builder_image="rust:alpine",
        runtime_image="alpine",
        toolchain_setup=_APK_MUSL,
    ),
    "debian": DockerfileVariant(
        name="debian",
        builder_image="rust",
        runtime_image="debian:bookworm-slim",
        toolchain_setup=_APT_MUSL,
    ),
}


def get_variant(name: str) -> DockerfileVariant:
    try:
        return VARIANTS[name]  # type: ignore[index]
    except KeyError:
        raise ValidationError(
            "Unknown runtime image variant.",
            hint=f"Use one of: {', '.join(VARIANTS)}.",
            context={"variant": name},
        ) from None


def render_dockerfile(
    *,
    binary_name: str = DEFAULT_BINARY_NAME,
    target: TargetTriple = DEFAULT_TARGET,
    variant: str = "scratch",
    builder_image: str | None = None,
) -> str:
    spec = get_variant(variant)
    workdir = f"/usr/src/{binary_name}"
    entrypoint = json.dumps([f"/{binary_name}"])

    lines = [
        f"FROM {builder_image or spec.builder_image} AS build",
        f"WORKDIR {workdir}",
        "",
        f"RUN rustup target add {target} && \\",
        f"  {spec.toolchain_setup}",
        "",
        "RUN mkdir src/ && touch src/lib.rs",
        "COPY Cargo.toml Cargo.lock ./",
        f"RUN cargo build --locked --lib --release --target {target}",
        "",
        "COPY src ./src",
        f"RUN cargo install --locked --path . --root . --target {target}",
        "",
        "",
        f"FROM {spec.runtime_image}",
        "",
        f"COPY --from=build {workdir}/bin/{binary_name} /{binary_name}",
        f"ENTRYPOINT {entrypoint}",
    ]
    return "\n".join(lines) + "\n"


def write_dockerfile(
    path: str | Path,
    *,
    binary_name: str = DEFAULT_BINARY_NAME,
    target: TargetTriple = DEFAULT_TARGET,
    variant: str = "scratch",
    builder_image: str | None = None,
) -> Path:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    rendered = render_dockerfile(
        binary_name=binary_name,
        target=target,
        variant=variant,
        builder_image=builder_image,
    )
    output_path.write_text(rendered, encoding="utf-8")
    return output_path
