from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class PresignedUrl:
    url: str
    key: str
    method: str = "PUT"
    headers: Dict[str, str] = field(default_factory=dict)
    expires_in: int = 3600


@runtime_checkable
class StorageProvider(Protocol):
    """
    Everything the core needs from a storage backend.
    The core never talks to an SDK directly.
    """

    name: str

    async def generate_presigned_upload_url(
        self,
        key: str,
        content_type: Optional[str] = None,
        content_length: Optional[int] = None,
        expires_in: int = 3600,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PresignedUrl: ...

    async def generate_presigned_download_url(self, key: str, expires_in: int = 3600) -> str: ...

    def get_file_url(self, key: str) -> str: ...

    async def file_exists(self, key: str) -> bool: ...
