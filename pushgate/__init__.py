"""pushgate: declarative upload routes, presigned URLs and a client orchestrator."""
from pushgate.core.contracts import PresignedUrl, StorageProvider
from pushgate.core.errors import (
    CancellationError,
    ConfigError,
    MiddlewareRejection,
    ProviderError,
    PushgateError,
    RouteNotFoundError,
    TransportError,
    ValidationError,
)
from pushgate.engine.config import UploadConfig, UploadDefaults, load_upload_config
from pushgate.engine.handler import HandlerRequest, HandlerResponse, UniversalHandler, create_universal_handler
from pushgate.engine.paths import KeyFactory, PathContext, PathsConfig
from pushgate.engine.registry import UploadRouter, create_router
from pushgate.engine.route import LifecycleContext, MiddlewareContext, Route
from pushgate.engine.schema import file, image, object
from pushgate.schemas.uploads import FileMetadata

__version__ = "0.1.0"

__all__ = [
    "CancellationError",
    "ConfigError",
    "FileMetadata",
    "HandlerRequest",
    "HandlerResponse",
    "KeyFactory",
    "LifecycleContext",
    "MiddlewareContext",
    "MiddlewareRejection",
    "PathContext",
    "PathsConfig",
    "PresignedUrl",
    "ProviderError",
    "PushgateError",
    "Route",
    "RouteNotFoundError",
    "StorageProvider",
    "TransportError",
    "UniversalHandler",
    "UploadConfig",
    "UploadDefaults",
    "UploadRouter",
    "ValidationError",
    "create_router",
    "create_universal_handler",
    "file",
    "image",
    "load_upload_config",
    "object",
]
