# pushgate/services/storage.py
"""
Storage providers behind the StorageProvider contract.

S3Provider signs with boto3 (s3v4) against AWS or any S3-compatible endpoint.
MemoryProvider issues deterministic fake URLs and keeps objects in a dict,
for local development and tests.
"""
from __future__ import annotations

import asyncio
import hashlib
from typing import Callable, Dict, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from pushgate.core.contracts import PresignedUrl
from pushgate.core.errors import ProviderError, map_client_error
from pushgate.core.logging_config import get_logger
from pushgate.services.providers import ProviderSettings

logger = get_logger(__name__)


# =========================
# S3 (and compatibles)
# =========================
class S3Provider:
    def __init__(self, settings: ProviderSettings, client=None):
        # completeness is checked on first use
        self.settings = settings
        self.name = settings.provider
        self._client = client

    @property
    def client(self):
        if self._client is None:
            s = self.settings.require_complete()
            kwargs = {}
            if s.access_key_id and s.secret_access_key:
                kwargs.update(
                    aws_access_key_id=s.access_key_id,
                    aws_secret_access_key=s.secret_access_key,
                    aws_session_token=s.session_token,
                )
            self._client = boto3.client(
                "s3",
                region_name=s.region,
                endpoint_url=s.endpoint or None,
                config=Config(
                    signature_version="s3v4",
                    s3={"addressing_style": "path" if s.force_path_style else "auto"},
                    retries={"max_attempts": 3, "mode": "standard"},
                ),
                **kwargs,
            )
            logger.debug("s3_client_created", provider=self.name, region=s.region, endpoint=s.endpoint)
        return self._client

    async def _sign(self, operation: str, params: Dict, expires_in: int, method: str) -> str:
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                operation,
                Params=params,
                ExpiresIn=expires_in,
                HttpMethod=method,
            )
        except ClientError as e:
            raise map_client_error(e, operation, params.get("Key"))
        except BotoCoreError as e:
            raise ProviderError(str(e), code="S3_CONNECTION_FAILED", context={"key": params.get("Key")}) from e

    async def generate_presigned_upload_url(
        self,
        key: str,
        content_type: Optional[str] = None,
        content_length: Optional[int] = None,
        expires_in: int = 3600,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PresignedUrl:
        params = {"Bucket": self.settings.bucket, "Key": key}
        headers: Dict[str, str] = {}
        if content_type:
            params["ContentType"] = content_type
            headers["Content-Type"] = content_type
        # user metadata stays unsigned: a signed x-amz-meta-* header must be echoed by the browser
        url = await self._sign("put_object", params, expires_in, "PUT")
        return PresignedUrl(url=url, key=key, method="PUT", headers=headers, expires_in=expires_in)

    async def generate_presigned_download_url(self, key: str, expires_in: int = 3600) -> str:
        params = {"Bucket": self.settings.bucket, "Key": key}
        return await self._sign("get_object", params, expires_in, "GET")

    def get_file_url(self, key: str) -> str:
        s = self.settings.require_complete()
        path = quote(key, safe="/")
        if s.custom_domain:
            domain = s.custom_domain.rstrip("/")
            if "://" not in domain:
                domain = f"https://{domain}"
            return f"{domain}/{path}"
        if s.endpoint:
            endpoint = s.endpoint.rstrip("/")
            if s.force_path_style:
                return f"{endpoint}/{s.bucket}/{path}"
            scheme, _, host = endpoint.partition("://")
            return f"{scheme}://{s.bucket}.{host}/{path}"
        return f"https://{s.bucket}.s3.{s.region}.amazonaws.com/{path}"

    async def file_exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.settings.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise map_client_error(e, "head_object", key)


# =========================
# In-memory
# =========================
class MemoryProvider:
    name = "memory"

    def __init__(
        self,
        base_url: str = "https://storage.local/bucket",
        fail_when: Optional[Callable[[str], bool]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.fail_when = fail_when
        self.issued: Dict[str, Dict[str, Optional[str]]] = {}
        self.objects: Dict[str, bytes] = {}

    def _signature(self, key: str, expires_in: int, method: str) -> str:
        raw = f"{method}:{key}:{expires_in}".encode("utf-8")
        return hashlib.sha256(raw).hexdigest()[:32]

    async def generate_presigned_upload_url(
        self,
        key: str,
        content_type: Optional[str] = None,
        content_length: Optional[int] = None,
        expires_in: int = 3600,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PresignedUrl:
        if self.fail_when and self.fail_when(key):
            raise ProviderError(f"Signing refused for {key}", code="S3_ACCESS_DENIED", context={"key": key})
        self.issued[key] = {
            "content_type": content_type,
            "content_length": content_length,
            **{f"meta:{k}": v for k, v in (metadata or {}).items()},
        }
        sig = self._signature(key, expires_in, "PUT")
        url = f"{self.get_file_url(key)}?X-Amz-Expires={expires_in}&X-Amz-Signature={sig}"
        headers = {"Content-Type": content_type} if content_type else {}
        return PresignedUrl(url=url, key=key, headers=headers, expires_in=expires_in)

    async def generate_presigned_download_url(self, key: str, expires_in: int = 3600) -> str:
        sig = self._signature(key, expires_in, "GET")
        return f"{self.get_file_url(key)}?X-Amz-Expires={expires_in}&X-Amz-Signature={sig}"

    def get_file_url(self, key: str) -> str:
        return f"{self.base_url}/{quote(key, safe='/')}"

    def put(self, key: str, data: bytes) -> None:
        self.objects[key] = bytes(data)

    async def file_exists(self, key: str) -> bool:
        return key in self.objects


def create_provider(settings: ProviderSettings) -> S3Provider:
    """Every supported backend speaks the S3 API; only settings differ."""
    return S3Provider(settings)
