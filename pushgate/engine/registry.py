# pushgate/engine/registry.py
"""
Router registry: name -> Route, plus the two server operations.

Presign, per file (files run concurrently, output keeps input order):
  1. validate declared metadata against the route schema
  2. thread metadata through the middleware chain, in registration order
  3. build the object key
  4. on_upload_start (best effort)
  5. provider mints the presigned URL

Any failure in 1-5 rejects that file only. Completion resolves URLs and runs
on_upload_complete; hook failures are logged, never returned.
"""
from __future__ import annotations

import asyncio
import copy
import inspect
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pushgate.core.errors import (
    ConfigError,
    MiddlewareRejection,
    ProviderError,
    PushgateError,
    RouteNotFoundError,
    ValidationError,
)
from pushgate.core.logging_config import get_logger
from pushgate.engine.config import UploadConfig
from pushgate.engine.paths import build_key, user_id_from
from pushgate.engine.route import LifecycleContext, MiddlewareContext, Route
from pushgate.engine.schema import Schema
from pushgate.observability.metrics import record_complete, record_presign
from pushgate.schemas.uploads import CompletionResult, FileMetadata, PresignResult, UploadCompletion

logger = get_logger(__name__)

PRESIGN_FAILED = "Failed to generate presigned URL"
COMPLETE_FAILED = "Failed to resolve uploaded file"


async def _call(fn, *args):
    out = fn(*args)
    if inspect.isawaitable(out):
        out = await out
    return out


async def _best_effort(hook, ctx: LifecycleContext, event: str) -> None:
    """Lifecycle hooks never fail the operation they observe."""
    if hook is None:
        return
    try:
        await _call(hook, ctx)
    except Exception as e:
        logger.warning(event, route=ctx.route_name, key=ctx.key, error=f"{type(e).__name__}: {e}")


def _as_files(files: Sequence[Union[FileMetadata, Dict[str, Any]]]) -> List[FileMetadata]:
    return [f if isinstance(f, FileMetadata) else FileMetadata.model_validate(f) for f in files]


class UploadRouter:
    def __init__(self, routes: Mapping[str, Union[Route, Schema]], config: UploadConfig) -> None:
        table: Dict[str, Route] = {}
        for name, value in routes.items():
            if not isinstance(name, str) or not name.strip():
                raise ConfigError(f"Invalid route name: {name!r}")
            if isinstance(value, Schema):
                value = Route(value)
            elif not isinstance(value, Route):
                raise ConfigError(f"Route {name!r} must be a schema or a Route, got {type(value).__name__}")

            schema = value.schema.with_defaults(
                config.defaults.max_file_size,
                config.defaults.allowed_file_types,
            )
            table[name] = replace(value, schema=schema, name=name)

        self._routes: Mapping[str, Route] = MappingProxyType(table)
        self.config = config
        logger.debug("router_initialized", routes=list(table), provider=getattr(config.provider, "name", None))

    # ----------------------------------------------------
    # Lookup
    # ----------------------------------------------------
    def get_route(self, name: str) -> Optional[Route]:
        return self._routes.get(name)

    def require_route(self, name: str) -> Route:
        route = self._routes.get(name)
        if route is None:
            raise RouteNotFoundError(name, list(self._routes))
        return route

    def route_names(self) -> List[str]:
        return list(self._routes)

    def describe(self) -> List[Dict[str, Any]]:
        return [r.describe() for r in self._routes.values()]

    @property
    def handlers(self):
        from pushgate.engine.handler import UniversalHandler

        return UniversalHandler(self, debug=self.config.debug)

    # ----------------------------------------------------
    # Presign
    # ----------------------------------------------------
    async def generate_presigned_urls(
        self,
        route_name: str,
        request: Any,
        files: Sequence[Union[FileMetadata, Dict[str, Any]]],
        client_metadata: Optional[Dict[str, Any]] = None,
    ) -> List[PresignResult]:
        route = self.require_route(route_name)
        batch = _as_files(files)

        issue = route.schema.validate_batch(batch)
        if issue is not None:
            raise ValidationError(issue.message, code=issue.code, path=list(issue.path))

        results = await asyncio.gather(
            *(self._presign_one(route, request, f, i, client_metadata) for i, f in enumerate(batch))
        )
        return list(results)

    async def _presign_one(
        self,
        route: Route,
        request: Any,
        file: FileMetadata,
        index: int,
        client_metadata: Optional[Dict[str, Any]],
    ) -> PresignResult:
        log = logger.bind(route=route.name, file=file.name, index=index)
        metadata: Dict[str, Any] = {
            **copy.deepcopy(self.config.defaults.metadata),
            **copy.deepcopy(client_metadata or {}),
        }
        key: Optional[str] = None

        try:
            # 1) Validated
            result = await route.schema.validate(file, index=index)
            if not result.success:
                raise ValidationError(result.error.message, code=result.error.code, path=list(result.error.path))

            # 2) MiddlewarePassed
            for mw in route.middlewares:
                ctx = MiddlewareContext(req=request, file=file, metadata=dict(metadata), route_name=route.name)
                patch = await _call(mw, ctx)
                if patch is None:
                    continue
                if not isinstance(patch, dict):
                    raise ConfigError(
                        f"Middleware must return a dict or None, got {type(patch).__name__}"
                    )
                metadata = {**metadata, **patch}

            # 3) KeyGenerated
            key = build_key(
                file,
                metadata,
                route.name,
                route.path_config,
                self.config.paths,
                self.config.key_factory,
            )

            await _best_effort(
                route.start_hook,
                LifecycleContext(file=file, metadata=metadata, route_name=route.name, key=key),
                "upload_start_hook_failed",
            )

            # 4) Presigned
            try:
                presigned = await self.config.provider.generate_presigned_upload_url(
                    key=key,
                    content_type=file.type or None,
                    content_length=file.size,
                    expires_in=self.config.presign_expires_seconds,
                    metadata={
                        "originalName": file.name,
                        "userId": user_id_from(metadata),
                        "routeName": route.name,
                    },
                )
            except Exception as e:
                log.error("presign_provider_failed", key=key, error=f"{type(e).__name__}: {e}")
                raise ProviderError(PRESIGN_FAILED, context={"key": key, "original_error": e}) from e

        except Exception as e:
            message = self._client_message(e)
            if isinstance(e, (ValidationError, MiddlewareRejection)):
                log.info("presign_rejected", code=getattr(e, "code", None), error=message)
            elif not isinstance(e, ProviderError):
                log.warning("presign_failed", error=f"{type(e).__name__}: {e}")

            await _best_effort(
                route.error_hook,
                LifecycleContext(file=file, metadata=metadata, route_name=route.name, key=key, error=e),
                "upload_error_hook_failed",
            )
            record_presign(route.name, False, file.size)
            return PresignResult(success=False, file=file, error=message)

        if self.config.debug:
            log.debug("presigned_url_generated", key=presigned.key, expires_in=presigned.expires_in)
        record_presign(route.name, True, file.size)
        return PresignResult(
            success=True,
            file=file,
            presigned_url=presigned.url,
            key=presigned.key,
            metadata=metadata,
        )

    @staticmethod
    def _client_message(e: Exception) -> str:
        if isinstance(e, ProviderError):
            return PRESIGN_FAILED
        if isinstance(e, PushgateError):
            return e.message
        return str(e) or PRESIGN_FAILED

    # ----------------------------------------------------
    # Complete
    # ----------------------------------------------------
    async def handle_upload_complete(
        self,
        route_name: str,
        request: Any,
        completions: Sequence[Union[UploadCompletion, Dict[str, Any]]],
    ) -> List[CompletionResult]:
        route = self.require_route(route_name)
        items = [
            c if isinstance(c, UploadCompletion) else UploadCompletion.model_validate(c)
            for c in completions
        ]
        results = await asyncio.gather(*(self._complete_one(route, c) for c in items))
        return list(results)

    async def _complete_one(self, route: Route, completion: UploadCompletion) -> CompletionResult:
        provider = self.config.provider
        try:
            url = provider.get_file_url(completion.key)
            presigned_url = await provider.generate_presigned_download_url(
                completion.key, self.config.download_expires_seconds
            )
        except Exception as e:
            logger.error(
                "complete_provider_failed",
                route=route.name,
                key=completion.key,
                error=f"{type(e).__name__}: {e}",
            )
            record_complete(route.name, False)
            return CompletionResult(success=False, key=completion.key, error=COMPLETE_FAILED)

        # Bytes are already in the bucket; the hook cannot undo that.
        await _best_effort(
            route.complete_hook,
            LifecycleContext(
                file=completion.file,
                metadata=completion.metadata or {},
                route_name=route.name,
                key=completion.key,
                url=url,
            ),
            "upload_complete_hook_failed",
        )
        record_complete(route.name, True)
        return CompletionResult(
            success=True,
            key=completion.key,
            url=url,
            presigned_url=presigned_url,
            file=completion.file,
        )


def create_router(routes: Mapping[str, Union[Route, Schema]], config: UploadConfig) -> UploadRouter:
    return UploadRouter(routes, config)
