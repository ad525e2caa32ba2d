# pushgate/client/transfer.py
"""Direct PUT of file bytes to a presigned URL, with progress ticks."""
from __future__ import annotations

import inspect
import time
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Union

import httpx

from pushgate.client.state import compute_progress
from pushgate.core.errors import TransportError

DEFAULT_CHUNK_SIZE = 64 * 1024

# (progress %, speed B/s, eta s)
ProgressListener = Callable[[int, float, Optional[float]], Union[None, Awaitable[None]]]


class ProgressTracker:
    def __init__(self, total: int, clock: Callable[[], float] = time.monotonic):
        self.total = total
        self.clock = clock
        self.started_at = clock()
        self.bytes_sent = 0

    def update(self, bytes_sent: int):
        self.bytes_sent = bytes_sent
        return compute_progress(bytes_sent, self.total, self.clock() - self.started_at)


def is_retryable(e: Exception) -> bool:
    return isinstance(e, TransportError) and e.retryable


class DirectTransfer:
    def __init__(
        self,
        http: httpx.AsyncClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http = http
        self.chunk_size = max(1, chunk_size)
        self.clock = clock

    async def _stream(self, data: bytes, tracker: ProgressTracker, listener: Optional[ProgressListener]) -> AsyncIterator[bytes]:
        sent = 0
        for start in range(0, len(data), self.chunk_size):
            chunk = data[start:start + self.chunk_size]
            yield chunk
            sent += len(chunk)
            if listener is not None:
                out = listener(*tracker.update(sent))
                if inspect.isawaitable(out):
                    await out

    async def put(
        self,
        url: str,
        data: bytes,
        content_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        on_progress: Optional[ProgressListener] = None,
    ) -> httpx.Response:
        tracker = ProgressTracker(len(data), self.clock)
        send_headers = {"Content-Length": str(len(data)), **(headers or {})}
        if content_type:
            send_headers["Content-Type"] = content_type

        try:
            response = await self.http.put(
                url,
                content=self._stream(data, tracker, on_progress),
                headers=send_headers,
            )
        except httpx.TransportError as e:
            raise TransportError(f"Network error during upload: {e}") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise TransportError(f"Upload failed: HTTP {response.status_code}", status=response.status_code)
        if response.status_code >= 400:
            raise TransportError(
                f"Upload failed: HTTP {response.status_code}",
                status=response.status_code,
                retryable=False,
            )
        return response
