# pushgate/engine/route.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from pushgate.engine.paths import RoutePaths, RouteKeyFn
from pushgate.engine.schema import Schema
from pushgate.schemas.uploads import FileMetadata


@dataclass(frozen=True)
class MiddlewareContext:
    req: Any
    file: FileMetadata
    metadata: Dict[str, Any]
    route_name: str


@dataclass(frozen=True)
class LifecycleContext:
    file: FileMetadata
    metadata: Dict[str, Any]
    route_name: str
    key: Optional[str] = None
    url: Optional[str] = None
    error: Optional[BaseException] = None


MaybeAwaitable = Union[Any, Awaitable[Any]]
Middleware = Callable[[MiddlewareContext], MaybeAwaitable]
LifecycleHook = Callable[[LifecycleContext], MaybeAwaitable]


@dataclass(frozen=True)
class Route:
    """
    One named upload endpoint. Every builder method returns a new Route,
    so a shared base route can be specialised without side effects.
    """

    schema: Schema
    middlewares: Tuple[Middleware, ...] = ()
    path_config: RoutePaths = field(default_factory=RoutePaths)
    start_hook: Optional[LifecycleHook] = None
    complete_hook: Optional[LifecycleHook] = None
    error_hook: Optional[LifecycleHook] = None
    name: Optional[str] = None

    @property
    def kind(self) -> str:
        return self.schema.kind

    def middleware(self, fn: Middleware) -> "Route":
        return replace(self, middlewares=self.middlewares + (fn,))

    def paths(
        self,
        prefix: Optional[str] = None,
        suffix: Optional[str] = None,
        generate_key: Optional[RouteKeyFn] = None,
    ) -> "Route":
        current = self.path_config
        return replace(
            self,
            path_config=RoutePaths(
                prefix=prefix if prefix is not None else current.prefix,
                suffix=suffix if suffix is not None else current.suffix,
                generate_key=generate_key if generate_key is not None else current.generate_key,
            ),
        )

    def on_upload_start(self, hook: LifecycleHook) -> "Route":
        return replace(self, start_hook=hook)

    def on_upload_complete(self, hook: LifecycleHook) -> "Route":
        return replace(self, complete_hook=hook)

    def on_upload_error(self, hook: LifecycleHook) -> "Route":
        return replace(self, error_hook=hook)

    def named(self, name: str) -> "Route":
        return replace(self, name=name)

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.kind,
            "schema": self.schema.describe(),
            "middleware": len(self.middlewares),
        }
