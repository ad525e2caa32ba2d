import os

os.environ.setdefault("PUSHGATE_METRICS_ENABLED", "1")

import httpx
import pytest

from pushgate import HandlerRequest, KeyFactory, PathsConfig, UploadConfig, create_router, file, image
from pushgate.services.storage import MemoryProvider

STORAGE_HOST = "storage.local"
API_URL = "http://testserver/api/upload"


@pytest.fixture
def anyio_backend():
    # asyncio only, no trio needed
    return "asyncio"


@pytest.fixture
def provider():
    return MemoryProvider(base_url=f"https://{STORAGE_HOST}/bucket")


@pytest.fixture
def key_factory():
    return KeyFactory(now_ms=lambda: 1700000000000, random_id=lambda: "abc123")


@pytest.fixture
def config(provider, key_factory):
    return UploadConfig(provider=provider, paths=PathsConfig(prefix="uploads"), key_factory=key_factory)


@pytest.fixture
def router(config):
    return create_router(
        {
            "imageUpload": image().max("5MB").formats(["jpeg", "png"]),
            "documentUpload": file(max_size="10MB", allowed_types=["application/pdf"]),
        },
        config,
    )


def bridge_transport(handler, provider, storage_hook=None):
    """
    One httpx transport for both sides of an upload:
    API calls go to the UniversalHandler, PUTs to storage land in the MemoryProvider.
    storage_hook(request) may return a Response (or raise) to simulate storage behaviour.
    """

    async def dispatch(request: httpx.Request) -> httpx.Response:
        if request.url.host == STORAGE_HOST:
            if storage_hook is not None:
                out = storage_hook(request)
                if hasattr(out, "__await__"):
                    out = await out
                if out is not None:
                    return out
            key = request.url.path.split("/bucket/", 1)[1]
            provider.put(key, request.content)
            return httpx.Response(200)

        resp = await handler(
            HandlerRequest(
                method=request.method,
                url=str(request.url),
                headers=dict(request.headers),
                body=request.content,
            )
        )
        return httpx.Response(resp.status, json=resp.body, headers=resp.headers)

    return httpx.MockTransport(dispatch)


@pytest.fixture
def bridge():
    return bridge_transport
