# pushgate/client/state.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from pushgate.schemas.uploads import FileMetadata


class FileStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class ClientFileState:
    """One file's view of a batch. Owned and mutated by a single orchestrator."""

    id: str
    name: str
    size: int
    type: str = ""
    status: FileStatus = FileStatus.PENDING
    progress: int = 0
    upload_speed: float = 0.0
    eta: Optional[float] = None
    url: Optional[str] = None
    key: Optional[str] = None
    presigned_url: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def done(self) -> bool:
        return self.status in (FileStatus.SUCCESS, FileStatus.ERROR)

    def fail(self, message: str) -> None:
        self.status = FileStatus.ERROR
        self.error = message
        self.upload_speed = 0.0
        self.eta = None

    def succeed(self, key: Optional[str]) -> None:
        self.status = FileStatus.SUCCESS
        self.progress = 100
        self.key = key
        self.error = None
        self.eta = 0.0

    def to_metadata(self) -> FileMetadata:
        return FileMetadata(name=self.name, size=self.size, type=self.type)


def _round_half_up(x: float) -> int:
    return int(x + 0.5)


def compute_progress(bytes_sent: int, total: int, elapsed: float) -> Tuple[int, float, Optional[float]]:
    """
    (progress %, speed B/s, eta s) for one transfer.
    Progress is clamped to [0, 100]; eta is None until a speed is known.
    """
    if total <= 0:
        return 100, 0.0, 0.0
    sent = max(0, min(bytes_sent, total))
    progress = max(0, min(100, _round_half_up(100 * sent / total)))
    speed = sent / elapsed if elapsed > 0 else 0.0
    eta = (total - sent) / speed if speed > 0 else None
    return progress, speed, eta


@dataclass(frozen=True)
class BatchMetrics:
    progress: int = 0
    upload_speed: float = 0.0
    eta: Optional[float] = None

    @staticmethod
    def from_states(states: Iterable[ClientFileState]) -> "BatchMetrics":
        # byte-weighted over files that are moving or done moving
        active = [s for s in states if s.status in (FileStatus.UPLOADING, FileStatus.SUCCESS)]
        total = sum(s.size for s in active)
        if not active or total <= 0:
            return BatchMetrics()

        done_bytes = sum(s.size * s.progress / 100 for s in active)
        speed = sum(s.upload_speed for s in active if s.status == FileStatus.UPLOADING)
        remaining = total - done_bytes
        eta = remaining / speed if speed > 0 else (0.0 if remaining <= 0 else None)
        return BatchMetrics(
            progress=_round_half_up(100 * done_bytes / total),
            upload_speed=speed,
            eta=eta,
        )


def format_eta(seconds: float) -> str:
    if seconds < 60:
        return f"{_round_half_up(seconds)}s"
    if seconds < 3600:
        return f"{_round_half_up(seconds / 60)}m"
    return f"{_round_half_up(seconds / 3600)}h"


def format_upload_speed(bytes_per_second: float) -> str:
    units = ["B/s", "KB/s", "MB/s", "GB/s"]
    size = float(bytes_per_second)
    unit = 0
    while size >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{size:.1f} {units[unit]}"
