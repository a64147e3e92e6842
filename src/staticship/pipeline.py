"""Publish pipeline state machine.

One run walks ``checkout -> authenticate -> build -> tag -> push_sha ->
push_latest -> done``. The first :class:`StaticshipError` moves the run to
``failed``; no later state is entered, nothing is rolled back and nothing is
retried. A failed ``latest`` push therefore leaves the SHA tag published.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

import cbor2

from staticship.backends import BuildBackend
from staticship.checkout import clone_revision, resolve_revision
from staticship.config import PipelineConfig
from staticship.errors import CheckoutError, StaticshipError
from staticship.models import (
    BuildRequest,
    BuiltImage,
    PushRecord,
    Revision,
    RunState,
    TaggedImage,
    Transition,
    TransitionOutcome,
)
from staticship.observability import StructuredLogger
from staticship.registry import Registry

T = TypeVar("T")

REPORT_DIR_NAME = "reports"
CHECKOUT_DIR_NAME = "checkout"


@dataclass(slots=True)
class PipelineResult:
    state: RunState
    revision: Revision | None = None
    image: BuiltImage | None = None
    tagged: TaggedImage | None = None
    pushes: list[PushRecord] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)
    error: StaticshipError | None = None
    logs: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is RunState.DONE

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": 1,
            "state": self.state.value,
            "ok": self.ok,
            "revision": _revision_payload(self.revision),
            "image": _image_payload(self.image),
            "refs": [str(ref) for ref in self.tagged.refs] if self.tagged else [],
            "pushes": [{"ref": str(push.ref), "digest": push.digest} for push in self.pushes],
            "transitions": [
                {"state": item.state.value, "outcome": item.outcome, "detail": item.detail}
                for item in self.transitions
            ],
            "error": self.error.to_dict() if self.error is not None else None,
            "logs": self.logs,
        }

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def to_cbor(self, path: str | Path | None = None) -> bytes:
        encoded = cbor2.dumps(self.to_dict(), canonical=True)
        if path is not None:
            Path(path).write_bytes(encoded)
        return encoded


@dataclass(slots=True)
class PublishPipeline:
    config: PipelineConfig
    backend: BuildBackend
    registry: Registry
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def run(self) -> PipelineResult:
        result = PipelineResult(state=RunState.CHECKOUT, logs=self.logger.records)
        try:
            revision, source_dir = self._step(result, RunState.CHECKOUT, self._checkout)
            result.revision = revision
            self.logger.bind(commit=revision.commit, registry_id=self.config.registry_id)

            # Credentials are checked before any build work is spent.
            self._step(result, RunState.AUTHENTICATE, self._authenticate)

            request = self.config.build_request(revision, source_dir=source_dir)
            image = self._step(result, RunState.BUILD, lambda: self._build(request))
            result.image = image

            tagged = self._step(result, RunState.TAG, lambda: self._tag(image, revision))
            result.tagged = tagged

            # The immutable SHA tag is always published before the moving tag.
            for state, ref in zip((RunState.PUSH_SHA, RunState.PUSH_LATEST), tagged.refs):
                push = self._step(result, state, lambda ref=ref: self.registry.push(image, ref))
                result.pushes.append(push)
        except StaticshipError as exc:
            result.error = exc
            self._transition(result, RunState.FAILED, "entered", detail=exc.code)
            self.logger.log(
                operation="pipeline_failed",
                state=RunState.FAILED.value,
                stage=None,
                message=str(exc).splitlines()[0],
                level="error",
                extra={"code": exc.code, "context": dict(exc.context)},
            )
        else:
            self._transition(result, RunState.DONE, "entered")
            self.logger.log(
                operation="pipeline_done",
                state=RunState.DONE.value,
                stage=None,
                message="Published image.",
                extra={"refs": [str(push.ref) for push in result.pushes]},
            )

        self._write_reports(result)
        return result

    def _step(self, result: PipelineResult, state: RunState, action: Callable[[], T]) -> T:
        self._transition(result, state, "entered")
        try:
            value = action()
        except StaticshipError as exc:
            self._transition(result, state, "failed", detail=exc.code)
            raise
        self._transition(result, state, "completed")
        return value

    def _transition(
        self,
        result: PipelineResult,
        state: RunState,
        outcome: TransitionOutcome,
        *,
        detail: str = "",
    ) -> None:
        result.state = state
        result.transitions.append(Transition(state=state, outcome=outcome, detail=detail))
        self.logger.transition(state=state.value, outcome=outcome, detail=detail)

    def _checkout(self) -> tuple[Revision, Path]:
        if self.config.repo_url is None:
            revision = resolve_revision(
                self.config.source_dir,
                expected_commit=self.config.commit_sha,
                require_clean=self.config.require_clean_worktree,
            )
            source_dir = self.config.source_dir
        else:
            if self.config.commit_sha is None:
                raise CheckoutError(
                    "Cloning a remote repository requires the triggering commit SHA.",
                    hint="Set GITHUB_SHA or pass commit_sha explicitly.",
                    context={"operation": "clone", "repo": self.config.repo_url},
                )
            source_dir = self.config.build_dir / CHECKOUT_DIR_NAME
            revision = clone_revision(
                self.config.repo_url,
                commit=self.config.commit_sha,
                dest=source_dir,
            )

        self.logger.log(
            operation="checkout",
            state=RunState.CHECKOUT.value,
            stage=None,
            message="Resolved source revision.",
            level="warning" if revision.dirty else "info",
            extra={"commit": revision.commit, "dirty": revision.dirty},
        )
        return revision, source_dir

    def _authenticate(self) -> None:
        self.registry.login(self.config.credentials)
        self.logger.log(
            operation="login",
            state=RunState.AUTHENTICATE.value,
            stage=None,
            message="Registry session established.",
            extra={"registry": self.registry.name, "registry_id": self.config.registry_id},
        )

    def _build(self, request: BuildRequest) -> BuiltImage:
        self.backend.prepare(request)
        image = self.backend.build(request)

        layer = image.dependency_layer
        if layer is not None:
            self.logger.log(
                operation="dependency_layer",
                state=RunState.BUILD.value,
                stage="dependencies",
                message="Reused dependency layer." if layer.cache_hit else "Built dependencies.",
                extra={"key": layer.key, "digest": layer.digest, "cache_hit": layer.cache_hit},
            )
        if image.binary is not None:
            self.logger.log(
                operation="release_build",
                state=RunState.BUILD.value,
                stage="application",
                message="Built release binary.",
                extra={"binary": image.binary.name, "sha256": image.binary.sha256},
            )
        self.logger.log(
            operation="assemble",
            state=RunState.BUILD.value,
            stage="runtime",
            message="Assembled runtime image.",
            extra={"backend": self.backend.name, "kind": image.kind, "digest": image.digest},
        )
        return image

    def _tag(self, image: BuiltImage, revision: Revision) -> TaggedImage:
        sha_ref, latest_ref = self.config.refs_for(revision)
        self.backend.tag(image, (sha_ref, latest_ref))
        return TaggedImage(image=image, sha_ref=sha_ref, latest_ref=latest_ref)

    def _write_reports(self, result: PipelineResult) -> None:
        report_dir = self.config.build_dir / REPORT_DIR_NAME
        report_dir.mkdir(parents=True, exist_ok=True)
        result.to_json(report_dir / "run.json")
        result.to_cbor(report_dir / "run.cbor")


def _revision_payload(revision: Revision | None) -> dict[str, Any] | None:
    if revision is None:
        return None
    return {"commit": revision.commit, "tree_hash": revision.tree_hash, "dirty": revision.dirty}


def _image_payload(image: BuiltImage | None) -> dict[str, Any] | None:
    if image is None:
        return None
    payload: dict[str, Any] = {
        "kind": image.kind,
        "digest": image.digest,
        "variant": image.variant,
        "layout_path": str(image.layout_path) if image.layout_path is not None else None,
    }
    if image.binary is not None:
        payload["binary"] = {
            "name": image.binary.name,
            "target": image.binary.target,
            "sha256": image.binary.sha256,
            "size": image.binary.size,
        }
    if image.dependency_layer is not None:
        payload["dependency_layer"] = {
            "key": image.dependency_layer.key,
            "digest": image.dependency_layer.digest,
            "cache_hit": image.dependency_layer.cache_hit,
        }
    return payload
