# pushgate/client/orchestrator.py
"""
Client side of one upload route.

    presign (one call) -> direct PUT per file (own task each) -> complete (one call)

Each transfer runs in its own asyncio.Task, so cancel(file_id) touches only
that file. There is no implicit timeout.
"""
from __future__ import annotations

import asyncio
import inspect
import mimetypes
import time
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from pushgate.client.state import BatchMetrics, ClientFileState, FileStatus
from pushgate.client.transfer import DEFAULT_CHUNK_SIZE, DirectTransfer, is_retryable
from pushgate.core.errors import CancellationError, TransportError
from pushgate.core.logging_config import get_logger
from pushgate.core.settings import get_settings
from pushgate.infra.retry import retry_async
from pushgate.schemas.uploads import CompletionResult, FileMetadata, PresignResult

logger = get_logger(__name__)

CANCELLED = CancellationError().message


@dataclass
class UploadFile:
    name: str
    data: bytes
    type: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    field: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path, type: Optional[str] = None, **extra) -> "UploadFile":
        p = Path(path)
        ctype = type or mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        return cls(name=p.name, data=p.read_bytes(), type=ctype, **extra)

    def to_metadata(self) -> FileMetadata:
        return FileMetadata(
            name=self.name,
            size=self.size,
            type=self.type,
            width=self.width,
            height=self.height,
            field=self.field,
        )


@dataclass
class UploadOptions:
    """Callbacks may be plain or async. None means: inherit / use settings."""

    on_start: Optional[Callable[[List[FileMetadata]], Any]] = None
    on_progress: Optional[Callable[[int], Any]] = None
    on_error: Optional[Callable[[str, Optional[ClientFileState]], Any]] = None
    on_success: Optional[Callable[[List[ClientFileState]], Any]] = None
    max_retries: Optional[int] = None
    retry_base: Optional[float] = None
    retry_cap: Optional[float] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    headers: Dict[str, str] = field(default_factory=dict)
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Any] = asyncio.sleep

    def merged(self, override: Optional["UploadOptions"]) -> "UploadOptions":
        if override is None:
            return self
        changes = {}
        defaults = UploadOptions()
        for f in fields(self):
            value = getattr(override, f.name)
            if value is not None and value != getattr(defaults, f.name):
                changes[f.name] = value
        return replace(self, **changes)


async def _notify(fn, *args) -> None:
    if fn is None:
        return
    try:
        out = fn(*args)
        if inspect.isawaitable(out):
            await out
    except Exception as e:
        logger.warning("client_callback_failed", callback=getattr(fn, "__name__", repr(fn)), error=repr(e))


def _server_error(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}"


class UploadOrchestrator:
    def __init__(
        self,
        route_name: str,
        endpoint: str,
        http_client: Optional[httpx.AsyncClient] = None,
        options: Optional[UploadOptions] = None,
    ):
        self.route_name = route_name
        self.endpoint = endpoint
        self.options = options or UploadOptions()
        self.http = http_client or httpx.AsyncClient(timeout=None)
        self._owns_http = http_client is None
        self.transfer = DirectTransfer(self.http, chunk_size=self.options.chunk_size, clock=self.options.clock)

        self.files: List[ClientFileState] = []
        self.errors: List[str] = []
        self.is_uploading = False
        self._tasks: Dict[str, asyncio.Task] = {}
        # bumped by reset(); a batch started under an older generation is discarded
        self._generation = 0

        s = get_settings()
        self._max_retries = s.client_max_retries if self.options.max_retries is None else self.options.max_retries
        self._retry_base = s.client_retry_base if self.options.retry_base is None else self.options.retry_base
        self._retry_cap = s.client_retry_cap if self.options.retry_cap is None else self.options.retry_cap

    # ----------------------------------------------------
    # Batch metrics
    # ----------------------------------------------------
    @property
    def metrics(self) -> BatchMetrics:
        return BatchMetrics.from_states(self.files)

    @property
    def progress(self) -> int:
        return self.metrics.progress

    @property
    def upload_speed(self) -> float:
        return self.metrics.upload_speed

    @property
    def eta(self) -> Optional[float]:
        return self.metrics.eta

    @property
    def in_flight(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())

    # ----------------------------------------------------
    # Wire calls
    # ----------------------------------------------------
    async def _post(self, action: str, payload: Dict[str, Any]) -> httpx.Response:
        return await self.http.post(
            self.endpoint,
            params={"route": self.route_name, "action": action},
            json=payload,
            headers=self.options.headers or None,
        )

    async def _presign(self, metas: List[FileMetadata], metadata: Optional[Dict[str, Any]]) -> List[PresignResult]:
        payload: Dict[str, Any] = {"files": [m.to_wire() for m in metas]}
        if metadata is not None:
            payload["metadata"] = metadata
        try:
            response = await self._post("presign", payload)
        except httpx.HTTPError as e:
            raise TransportError(f"Network error: {e}") from e

        if response.status_code >= 400:
            raise TransportError(_server_error(response), status=response.status_code, retryable=False)
        try:
            body = response.json()
        except ValueError as e:
            raise TransportError("Invalid presign response", status=response.status_code, retryable=False) from e
        if not isinstance(body, dict):
            raise TransportError("Invalid presign response", status=response.status_code, retryable=False)
        if not body.get("success"):
            raise TransportError(str(body.get("error") or "Failed to get presigned URLs"), retryable=False)

        raw_results = body.get("results") or []
        if not isinstance(raw_results, list):
            raise TransportError("Invalid presign response", status=response.status_code, retryable=False)
        try:
            results = [PresignResult.model_validate(r) for r in raw_results]
        except ValidationError as e:
            raise TransportError("Invalid presign response", status=response.status_code, retryable=False) from e
        if len(results) != len(metas):
            raise TransportError(f"Expected {len(metas)} presign results, got {len(results)}", retryable=False)
        return results

    async def _complete(self, done: List[ClientFileState], metadata: Optional[Dict[str, Any]]) -> None:
        payload = {
            "completions": [
                {"key": s.key, "file": s.to_metadata().to_wire(), "metadata": metadata}
                for s in done
            ]
        }
        try:
            response = await self._post("complete", payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            # bytes are stored either way; only URL reconciliation is lost
            logger.warning("complete_call_failed", route=self.route_name, error=repr(e))
            return

        raw_results = body.get("results") if isinstance(body, dict) else None
        if not isinstance(raw_results, list):
            logger.warning("complete_call_failed", route=self.route_name, error="malformed completion response")
            return

        by_key = {s.key: s for s in done}
        for raw in raw_results:
            try:
                result = CompletionResult.model_validate(raw)
            except ValidationError as e:
                logger.warning("complete_result_invalid", route=self.route_name, errors=e.error_count())
                continue
            state = by_key.get(result.key)
            if state is None or not result.success:
                continue
            state.url = result.url
            state.presigned_url = result.presigned_url

    # ----------------------------------------------------
    # Transfer
    # ----------------------------------------------------
    async def _upload_one(self, state: ClientFileState, file: UploadFile, url: str) -> None:
        async def on_tick(progress: int, speed: float, eta: Optional[float]) -> None:
            state.progress, state.upload_speed, state.eta = progress, speed, eta
            await _notify(self.options.on_progress, self.progress)

        async def attempt():
            state.attempts += 1
            state.status = FileStatus.UPLOADING
            state.error = None
            state.progress = 0
            return await self.transfer.put(url, file.data, content_type=file.type or None, on_progress=on_tick)

        def on_retry(n: int, e: Exception, delay: float) -> None:
            state.fail(str(e))
            logger.info("upload_retry", route=self.route_name, file=state.name, attempt=n, delay=round(delay, 2))

        try:
            await retry_async(
                attempt,
                attempts=self._max_retries + 1,
                base=self._retry_base,
                cap=self._retry_cap,
                is_retryable=is_retryable,
                on_retry=on_retry,
                sleep=self.options.sleep,
            )
        except asyncio.CancelledError:
            state.fail(CANCELLED)
            return
        except Exception as e:
            message = e.message if isinstance(e, TransportError) else str(e) or type(e).__name__
            state.fail(message)
            self.errors.append(message)
            logger.warning("upload_failed", route=self.route_name, file=state.name, attempts=state.attempts, error=message)
            await _notify(self.options.on_error, message, state)
            return

        state.succeed(state.key)
        await _notify(self.options.on_progress, self.progress)

    # ----------------------------------------------------
    # Public API
    # ----------------------------------------------------
    async def upload_files(
        self,
        files: Sequence[UploadFile],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[ClientFileState]:
        batch_ms = int(time.time() * 1000)
        metas = [f.to_metadata() for f in files]
        states = [
            ClientFileState(id=f"{batch_ms}-{i}", name=m.name, size=m.size, type=m.type)
            for i, m in enumerate(metas)
        ]
        self.files = states
        self.errors = []
        if not states:
            return states

        generation = self._generation
        self.is_uploading = True
        try:
            try:
                results = await self._presign(metas, metadata)
            except TransportError as e:
                if generation != self._generation:
                    return self._discard(states)
                for s in states:
                    s.fail(e.message)
                self.errors.append(e.message)
                logger.warning("presign_call_failed", route=self.route_name, error=e.message)
                await _notify(self.options.on_error, e.message, None)
                return states
            if generation != self._generation:
                return self._discard(states)

            await _notify(self.options.on_start, metas)
            await _notify(self.options.on_progress, 0)

            tasks: List[asyncio.Task] = []
            for state, file, result in zip(states, files, results):
                if not result.success or not result.presigned_url:
                    message = result.error or "Failed to generate presigned URL"
                    state.fail(message)
                    self.errors.append(message)
                    await _notify(self.options.on_error, message, state)
                    continue
                state.key = result.key
                state.status = FileStatus.UPLOADING
                task = asyncio.create_task(self._upload_one(state, file, result.presigned_url))
                self._tasks[state.id] = task
                tasks.append(task)

            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            # a task cancelled before its first step never reaches its own handler
            for s in states:
                if s.status == FileStatus.UPLOADING:
                    s.fail(CANCELLED)
            if generation != self._generation:
                return self._discard(states)

            done = [s for s in states if s.status == FileStatus.SUCCESS]
            if done:
                await self._complete(done, metadata)
                await _notify(self.options.on_success, done)
            return states
        finally:
            for s in states:
                self._tasks.pop(s.id, None)
            if generation == self._generation:
                self.is_uploading = False

    def _discard(self, states: List[ClientFileState]) -> List[ClientFileState]:
        for s in states:
            if not s.done:
                s.fail(CANCELLED)
        logger.info("batch_discarded", route=self.route_name, files=len(states))
        return states

    def cancel(self, file_id: str) -> bool:
        task = self._tasks.get(file_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def reset(self) -> None:
        self._generation += 1
        tasks = [t for t in self._tasks.values() if not t.done()]
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self.files = []
        self.errors = []
        self.is_uploading = False

    async def aclose(self) -> None:
        await self.reset()
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "UploadOrchestrator":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
