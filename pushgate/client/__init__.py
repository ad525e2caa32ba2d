from pushgate.client.orchestrator import UploadFile, UploadOptions, UploadOrchestrator
from pushgate.client.state import (
    BatchMetrics,
    ClientFileState,
    FileStatus,
    compute_progress,
    format_eta,
    format_upload_speed,
)
from pushgate.client.transfer import DirectTransfer, ProgressTracker
from pushgate.client.upload_client import UploadClient

__all__ = [
    "BatchMetrics",
    "ClientFileState",
    "DirectTransfer",
    "FileStatus",
    "ProgressTracker",
    "UploadClient",
    "UploadFile",
    "UploadOptions",
    "UploadOrchestrator",
    "compute_progress",
    "format_eta",
    "format_upload_speed",
]
