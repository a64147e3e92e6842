"""Command-line entry point.

Usage:
    staticship publish [--backend native|docker] [--registry digitalocean|local]
    staticship dockerfile [--variant scratch] [--output Dockerfile]
    staticship workflow [--backend docker] [--output .github/workflows/docker-image.yml]
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

from staticship.backends import get_backend
from staticship.compiler import render_dockerfile, render_workflow, write_dockerfile, write_workflow
from staticship.config import DEFAULT_BINARY_NAME, PipelineConfig
from staticship.errors import StaticshipError
from staticship.models import DEFAULT_TARGET, RUNTIME_VARIANTS
from staticship.observability import StructuredLogger
from staticship.pipeline import PublishPipeline
from staticship.registry import get_registry


def cmd_publish(args: argparse.Namespace) -> int:
    config = PipelineConfig.from_env(
        source_dir=args.source_dir,
        build_dir=args.build_dir,
        variant=args.variant,
        target=args.target,
        commit_sha=args.commit,
        repo_url=args.repo_url,
        require_clean_worktree=args.require_clean or None,
        cache_dir=args.cache_dir,
    )
    backend = get_backend(args.backend, cache_dir=config.resolved_cache_dir)
    registry_root = args.registry_root or config.build_dir / "registry"
    registry = get_registry(args.registry, root=registry_root if args.registry == "local" else None)

    logger = StructuredLogger()
    result = PublishPipeline(config=config, backend=backend, registry=registry, logger=logger).run()
    if args.log_file is not None:
        logger.to_json_lines(args.log_file)

    result.raise_for_failure()
    for push in result.pushes:
        print(f"{push.ref}@{push.digest}")
    return 0


def cmd_dockerfile(args: argparse.Namespace) -> int:
    options = {
        "binary_name": args.binary_name,
        "target": args.target,
        "variant": args.variant,
        "builder_image": args.builder_image,
    }
    if args.output is None:
        sys.stdout.write(render_dockerfile(**options))
    else:
        print(f"Wrote {write_dockerfile(args.output, **options)}")
    return 0


def cmd_workflow(args: argparse.Namespace) -> int:
    options = {"backend": args.backend, "variant": args.variant}
    if args.output is None:
        sys.stdout.write(render_workflow(**options))
    else:
        print(f"Wrote {write_workflow(args.output, **options)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="staticship",
        description="Build and publish a static binary as a minimal container image",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    publish_p = sub.add_parser("publish", help="Check out, build, tag and push one revision")
    publish_p.add_argument("--source-dir", type=Path, help="Crate root holding Cargo.toml")
    publish_p.add_argument("--build-dir", type=Path, help="Directory for build outputs and reports")
    publish_p.add_argument("--cache-dir", type=Path, help="Dependency layer cache directory")
    publish_p.add_argument("--backend", choices=("native", "docker"), default="docker")
    publish_p.add_argument("--registry", choices=("digitalocean", "local"), default="digitalocean")
    publish_p.add_argument("--registry-root", type=Path, help="Root of the local registry")
    publish_p.add_argument("--variant", choices=RUNTIME_VARIANTS)
    publish_p.add_argument("--target", help="Rust target triple")
    publish_p.add_argument("--commit", help="Expected commit SHA (defaults to GITHUB_SHA)")
    publish_p.add_argument("--repo-url", help="Clone this repository instead of using --source-dir")
    publish_p.add_argument("--require-clean", action="store_true", help="Fail on a dirty work tree")
    publish_p.add_argument("--log-file", type=Path, help="Write structured logs as JSON lines")
    publish_p.set_defaults(func=cmd_publish)

    dockerfile_p = sub.add_parser("dockerfile", help="Render the multi-stage Dockerfile")
    dockerfile_p.add_argument("--variant", choices=RUNTIME_VARIANTS, default="scratch")
    dockerfile_p.add_argument("--binary-name", default=DEFAULT_BINARY_NAME)
    dockerfile_p.add_argument("--target", default=DEFAULT_TARGET)
    dockerfile_p.add_argument("--builder-image")
    dockerfile_p.add_argument("--output", type=Path, help="Write to this path instead of stdout")
    dockerfile_p.set_defaults(func=cmd_dockerfile)

    workflow_p = sub.add_parser("workflow", help="Render the CI publish workflow")
    workflow_p.add_argument("--backend", choices=("docker", "native"), default="docker")
    workflow_p.add_argument("--variant", choices=RUNTIME_VARIANTS, default="scratch")
    workflow_p.add_argument("--output", type=Path, help="Write to this path instead of stdout")
    workflow_p.set_defaults(func=cmd_workflow)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except StaticshipError as exc:
        print(f"error[{exc.code}]: {exc}", file=sys.stderr)
        return 1
