from pathlib import Path

import pytest

from staticship.compiler import VARIANTS, render_dockerfile, write_dockerfile
from staticship.errors import ValidationError


def test_scratch_dockerfile_matches_three_stage_layout() -> None:
    rendered = render_dockerfile()

    assert rendered.splitlines() == [
        "FROM rust AS build",
        "WORKDIR /usr/src/ligmir",
        "",
        "RUN rustup target add x86_64-unknown-linux-musl && \\",
        "  apt-get update && \\",
        "  apt-get install -y musl-tools",
        "",
        "RUN mkdir src/ && touch src/lib.rs",
        "COPY Cargo.toml Cargo.lock ./",
        "RUN cargo build --locked --lib --release --target x86_64-unknown-linux-musl",
        "",
        "COPY src ./src",
        "RUN cargo install --locked --path . --root . --target x86_64-unknown-linux-musl",
        "",
        "",
        "FROM scratch",
        "",
        "COPY --from=build /usr/src/ligmir/bin/ligmir /ligmir",
        'ENTRYPOINT ["/ligmir"]',
    ]


def test_dependency_layer_precedes_source_copy() -> None:
    lines = render_dockerfile().splitlines()

    manifest_copy = lines.index("COPY Cargo.toml Cargo.lock ./")
    dependency_build = next(i for i, line in enumerate(lines) if "cargo build" in line)
    source_copy = lines.index("COPY src ./src")
    assert manifest_copy < dependency_build < source_copy


@pytest.mark.parametrize("variant", sorted(VARIANTS))
def test_every_variant_copies_only_the_binary(variant: str) -> None:
    lines = render_dockerfile(variant=variant).splitlines()
    runtime = lines[max(i for i, line in enumerate(lines) if line.startswith("FROM ")) :]

    assert runtime[0] == f"FROM {VARIANTS[variant].runtime_image}"  # type: ignore[index]
    copies = [line for line in runtime if line.startswith("COPY")]
    assert copies == ["COPY --from=build /usr/src/ligmir/bin/ligmir /ligmir"]
    assert runtime[-1] == 'ENTRYPOINT ["/ligmir"]'


def test_alpine_builder_uses_apk() -> None:
    rendered = render_dockerfile(variant="alpine")

    assert "FROM rust:alpine AS build" in rendered
    assert "apk add --no-cache musl-dev" in rendered


def test_builder_image_and_binary_name_overrides() -> None:
    rendered = render_dockerfile(binary_name="other", builder_image="rust:1.80", target="aarch64-unknown-linux-musl")

    assert rendered.startswith("FROM rust:1.80 AS build\n")
    assert "--target aarch64-unknown-linux-musl" in rendered
    assert 'ENTRYPOINT ["/other"]' in rendered


def test_unknown_variant_is_rejected() -> None:
    with pytest.raises(ValidationError, match="Unknown runtime image variant"):
        render_dockerfile(variant="ubuntu")


def test_write_dockerfile_creates_parent(tmp_path: Path) -> None:
    path = write_dockerfile(tmp_path / "out" / "Dockerfile", variant="debian")

    assert path.read_text(encoding="utf-8") == render_dockerfile(variant="debian")
