# pushgate/schemas/uploads.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Wire(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FileMetadata(_Wire):
    """Client-declared file description. Untrusted."""

    name: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)
    type: str = ""
    width: Optional[int] = Field(default=None, ge=0)
    height: Optional[int] = Field(default=None, ge=0)
    field: Optional[str] = None

    @property
    def extension(self) -> Optional[str]:
        if "." not in self.name:
            return None
        return self.name.rsplit(".", 1)[1].lower() or None


# === Request bodies ===
class PresignBody(_Wire):
    files: List[FileMetadata]
    metadata: Optional[Dict[str, Any]] = None


class UploadCompletion(_Wire):
    key: str = Field(..., min_length=1)
    file: FileMetadata
    metadata: Optional[Dict[str, Any]] = None


class CompleteBody(_Wire):
    completions: List[UploadCompletion]


# === Results ===
class PresignResult(_Wire):
    success: bool
    file: FileMetadata
    presigned_url: Optional[str] = Field(default=None, alias="presignedUrl")
    key: Optional[str] = None
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class CompletionResult(_Wire):
    success: bool
    key: str
    url: Optional[str] = None
    presigned_url: Optional[str] = Field(default=None, alias="presignedUrl")
    file: Optional[FileMetadata] = None
    error: Optional[str] = None


class RouteInfo(_Wire):
    name: str
    type: str


class ErrorEnvelope(_Wire):
    success: bool = False
    error: str
    details: Optional[Any] = None
