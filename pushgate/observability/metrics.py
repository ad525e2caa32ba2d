# pushgate/observability/metrics.py
import time
from contextlib import contextmanager
from typing import Iterator, Tuple

from fastapi import APIRouter
from starlette.responses import Response

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

from pushgate.core.settings import get_settings

router = APIRouter(tags=["observability"])

presign_counter = Counter(
    "pushgate_presign_total",
    "Presign results per file",
    ["route", "result"],  # success|error
)

complete_counter = Counter(
    "pushgate_complete_total",
    "Completion results per file",
    ["route", "result"],  # success|error
)

upload_size_hist = Histogram(
    "pushgate_upload_size_bytes",
    "Declared file sizes (client reported)",
    buckets=(1e5, 3e5, 1e6, 3e6, 1e7, 3e7, 1e8, 3e8, 1e9),
)

latency_hist = Histogram(
    "pushgate_handler_latency_seconds",
    "Handler latency per action",
    ["action"],  # presign|complete|introspect
)


def _enabled() -> bool:
    return get_settings().metrics_enabled


def record_presign(route: str, success: bool, size: int) -> None:
    if not _enabled():
        return
    presign_counter.labels(route=route, result="success" if success else "error").inc()
    if success:
        upload_size_hist.observe(size)


def record_complete(route: str, success: bool) -> None:
    if not _enabled():
        return
    complete_counter.labels(route=route, result="success" if success else "error").inc()


@contextmanager
def track_latency(action: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        if _enabled():
            latency_hist.labels(action=action).observe(time.perf_counter() - start)


def metrics_payload() -> Tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST


@router.get("/metrics", include_in_schema=True)
def metrics() -> Response:
    # Prometheus expects text/plain; version=0.0.4
    body, content_type = metrics_payload()
    return Response(content=body, media_type=content_type)
