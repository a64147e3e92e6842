"""Typed SDK error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across API surfaces."""

    VALIDATION = "E_VALIDATION"
    CHECKOUT = "E_CHECKOUT"
    AUTHENTICATION = "E_AUTHENTICATION"
    LOCKFILE = "E_LOCKFILE"
    DEPENDENCY_RESOLUTION = "E_DEPENDENCY_RESOLUTION"
    COMPILATION = "E_COMPILATION"
    ASSEMBLY = "E_ASSEMBLY"
    REPRODUCIBILITY = "E_REPRODUCIBILITY"
    BACKEND_EXECUTION = "E_BACKEND_EXECUTION"
    PUSH = "E_PUSH"


class StaticshipError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class _CodedError(StaticshipError):
    _code: ErrorCode

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=self._code, hint=hint, context=context)


class ValidationError(_CodedError):
    _code = ErrorCode.VALIDATION


class CheckoutError(_CodedError):
    _code = ErrorCode.CHECKOUT


class AuthenticationError(_CodedError):
    _code = ErrorCode.AUTHENTICATION


class LockfileError(_CodedError):
    _code = ErrorCode.LOCKFILE


class DependencyResolutionError(_CodedError):
    _code = ErrorCode.DEPENDENCY_RESOLUTION


class CompilationError(_CodedError):
    _code = ErrorCode.COMPILATION


class AssemblyError(_CodedError):
    _code = ErrorCode.ASSEMBLY


class ReproducibilityError(_CodedError):
    _code = ErrorCode.REPRODUCIBILITY


class BackendExecutionError(_CodedError):
    _code = ErrorCode.BACKEND_EXECUTION


class PushError(_CodedError):
    _code = ErrorCode.PUSH


def stderr_tail(stderr: str | None, limit: int = 2000) -> str:
    """Return the last *limit* characters of a subprocess stderr capture."""
    if not stderr:
        return ""
    return stderr[-limit:]


__all__ = [
    "AssemblyError",
    "AuthenticationError",
    "BackendExecutionError",
    "CheckoutError",
    "CompilationError",
    "DependencyResolutionError",
    "ErrorCode",
    "LockfileError",
    "PushError",
    "ReproducibilityError",
    "StaticshipError",
    "ValidationError",
    "stderr_tail",
]
