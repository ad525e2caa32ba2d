# pushgate/engine/config.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pushgate.core.contracts import StorageProvider
from pushgate.core.settings import Settings, get_settings
from pushgate.engine.paths import KeyFactory, PathsConfig


@dataclass(frozen=True)
class UploadDefaults:
    max_file_size: Optional[Any] = None      # bytes or "10MB"
    allowed_file_types: Optional[List[str]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UploadConfig:
    provider: StorageProvider
    paths: PathsConfig = field(default_factory=PathsConfig)
    defaults: UploadDefaults = field(default_factory=UploadDefaults)
    debug: bool = False
    presign_expires_seconds: int = 3600
    download_expires_seconds: int = 3600
    key_factory: KeyFactory = field(default_factory=KeyFactory)


def load_upload_config(
    provider: StorageProvider,
    settings: Optional[Settings] = None,
    raw: Optional[Dict[str, Any]] = None,
) -> UploadConfig:
    """Build an UploadConfig from settings, with an optional dict of overrides."""
    s = settings or get_settings()
    raw = raw or {}
    paths = raw.get("paths") or {}
    defaults = raw.get("defaults") or {}

    return UploadConfig(
        provider=provider,
        paths=PathsConfig(
            prefix=paths.get("prefix", s.path_prefix),
            generate_key=paths.get("generate_key"),
        ),
        defaults=UploadDefaults(
            max_file_size=defaults.get("max_file_size"),
            allowed_file_types=defaults.get("allowed_file_types"),
            metadata=defaults.get("metadata") or {},
        ),
        debug=raw.get("debug", s.debug),
        presign_expires_seconds=raw.get("presign_expires_seconds", s.presign_expires_seconds),
        download_expires_seconds=raw.get("download_expires_seconds", s.download_expires_seconds),
    )
