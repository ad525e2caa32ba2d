# pushgate/engine/paths.py
from __future__ import annotations

import re
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from pushgate.schemas.uploads import FileMetadata

_UNSAFE = re.compile(r"[^a-zA-Z0-9.-]")
_SLASHES = re.compile(r"/+")

DEFAULT_PREFIX = "uploads"

GlobalKeyFn = Callable[[FileMetadata, Dict[str, Any]], str]


@dataclass(frozen=True)
class PathsConfig:
    """Global path settings, shared by every route."""

    prefix: Optional[str] = None
    generate_key: Optional[GlobalKeyFn] = None


@dataclass(frozen=True)
class PathContext:
    file: FileMetadata
    metadata: Dict[str, Any]
    global_config: PathsConfig
    route_name: str


RouteKeyFn = Callable[[PathContext], str]


@dataclass(frozen=True)
class RoutePaths:
    # final key: {global prefix}/{route prefix}/{file part}/{suffix}
    prefix: Optional[str] = None
    suffix: Optional[str] = None
    generate_key: Optional[RouteKeyFn] = None


@dataclass
class KeyFactory:
    """Timestamp + random id source. Swap in fixed callables for deterministic keys."""

    now_ms: Callable[[], int] = field(default=lambda: int(time.time() * 1000))
    random_id: Callable[[], str] = field(default=lambda: secrets.token_hex(6))


def s3_key_join(*parts: Optional[str]) -> str:
    cleaned = [str(p).strip("/ ") for p in parts if p is not None and str(p).strip("/ ")]
    return _SLASHES.sub("/", "/".join(cleaned))


def safe_filename(name: str) -> str:
    return _UNSAFE.sub("_", name)


def user_id_from(metadata: Dict[str, Any]) -> str:
    if not isinstance(metadata, dict):
        return "anonymous"
    uid = metadata.get("userId") or metadata.get("user_id")
    if not uid and isinstance(metadata.get("user"), dict):
        uid = metadata["user"].get("id")
    return str(uid) if uid else "anonymous"


def default_file_key(file: FileMetadata, metadata: Dict[str, Any], factory: Optional[KeyFactory] = None) -> str:
    # {user id}/{timestamp ms}/{random id}/{sanitized name}
    factory = factory or KeyFactory()
    return s3_key_join(
        user_id_from(metadata),
        str(factory.now_ms()),
        factory.random_id(),
        safe_filename(file.name),
    )


def build_key(
    file: FileMetadata,
    metadata: Dict[str, Any],
    route_name: str,
    route_paths: Optional[RoutePaths],
    global_paths: Optional[PathsConfig],
    factory: Optional[KeyFactory] = None,
) -> str:
    global_paths = global_paths or PathsConfig()

    # A route-level generator owns the whole key.
    if route_paths is not None and route_paths.generate_key is not None:
        ctx = PathContext(file=file, metadata=metadata, global_config=global_paths, route_name=route_name)
        return _SLASHES.sub("/", route_paths.generate_key(ctx))

    global_prefix = global_paths.prefix or DEFAULT_PREFIX

    if global_paths.generate_key is not None:
        file_part = global_paths.generate_key(file, metadata)
        if file_part.startswith(global_prefix + "/"):
            file_part = file_part[len(global_prefix) + 1:]
    else:
        file_part = default_file_key(file, metadata, factory)

    return s3_key_join(
        global_prefix,
        route_paths.prefix if route_paths else None,
        file_part,
        route_paths.suffix if route_paths else None,
    )
