"""GitHub Actions workflow emission for the publish pipeline."""

from __future__ import annotations

from pathlib import Path

from staticship.compiler.emit_dockerfile import get_variant
from staticship.config import ENV_ACCESS_TOKEN, ENV_REGISTRY_ID
from staticship.errors import ValidationError

WORKFLOW_BACKENDS = ("docker", "native")
NATIVE_VARIANTS = ("scratch",)


def _secret(name: str) -> str:
    return "${{ secrets." + name + " }}"


def render_workflow(
    *,
    name: str = "Docker Image CI",
    backend: str = "docker",
    variant: str = "scratch",
    python_version: str = "3.12",
    package_spec: str = "staticship",
) -> str:
    """Render a workflow running ``staticship publish`` on push and manual dispatch."""
    if backend not in WORKFLOW_BACKENDS:
        raise ValidationError(
            "Unsupported workflow backend.",
            hint=f"Use one of: {', '.join(WORKFLOW_BACKENDS)}.",
            context={"backend": backend},
        )
    get_variant(variant)
    if backend == "native" and variant not in NATIVE_VARIANTS:
        raise ValidationError(
            "Native backend only assembles scratch runtime images.",
            hint="Use the docker backend for the alpine and debian variants.",
            context={"backend": backend, "variant": variant},
        )

    lines = [
        f"name: {name}",
        "",
        "on: [push, workflow_dispatch]",
        "",
        "jobs:",
        "  build:",
        "    runs-on: ubuntu-latest",
        "    steps:",
        "",
        "    - uses: actions/checkout@v4",
        "",
        "    - name: Install doctl",
        "      uses: digitalocean/action-doctl@v2",
        "      with:",
        f"        token: {_secret(ENV_ACCESS_TOKEN)}",
        "",
        "    - uses: actions/setup-python@v5",
        "      with:",
        f"        python-version: '{python_version}'",
    ]
    if backend == "native":
        lines += [
            "",
            "    - uses: dtolnay/rust-toolchain@stable",
            "      with:",
            "        targets: x86_64-unknown-linux-musl",
            "",
            "    - name: Install musl tools and skopeo",
            "      run: sudo apt-get update && sudo apt-get install -y musl-tools skopeo",
        ]
    lines += [
        "",
        "    - name: Install staticship",
        f"      run: pip install {package_spec}",
        "",
        "    - name: Build and publish the image",
        f"      run: staticship publish --backend {backend} --variant {variant}",
        "      env:",
        f"        {ENV_ACCESS_TOKEN}: {_secret(ENV_ACCESS_TOKEN)}",
        f"        {ENV_REGISTRY_ID}: {_secret(ENV_REGISTRY_ID)}",
    ]
    return "\n".join(lines) + "\n"


def write_workflow(path: str | Path, **options: str) -> Path:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_workflow(**options), encoding="utf-8")
    return output_path
