"""Public package entrypoint for the staticship build-and-publish SDK."""

from .backends import DockerBackend, NativeBackend, get_backend
from .config import PipelineConfig
from .errors import (
    AssemblyError,
    AuthenticationError,
    BackendExecutionError,
    CheckoutError,
    CompilationError,
    DependencyResolutionError,
    ErrorCode,
    LockfileError,
    PushError,
    ReproducibilityError,
    StaticshipError,
    ValidationError,
)
from .models import (
    BuildRequest,
    BuiltImage,
    Credentials,
    ImageRef,
    PushRecord,
    Revision,
    RunState,
    TaggedImage,
)
from .pipeline import PipelineResult, PublishPipeline
from .registry import DigitalOceanRegistry, LocalRegistry, get_registry

__all__ = [
    "AssemblyError",
    "AuthenticationError",
    "BackendExecutionError",
    "BuildRequest",
    "BuiltImage",
    "CheckoutError",
    "CompilationError",
    "Credentials",
    "DependencyResolutionError",
    "DigitalOceanRegistry",
    "DockerBackend",
    "ErrorCode",
    "ImageRef",
    "LocalRegistry",
    "LockfileError",
    "NativeBackend",
    "PipelineConfig",
    "PipelineResult",
    "PublishPipeline",
    "PushError",
    "PushRecord",
    "ReproducibilityError",
    "Revision",
    "RunState",
    "StaticshipError",
    "TaggedImage",
    "ValidationError",
    "get_backend",
    "get_registry",
]
