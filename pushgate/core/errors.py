# pushgate/core/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional

from botocore.exceptions import ClientError


class PushgateError(Exception):
    """
    Base error. Carries a stable code, an HTTP status for the handler
    and a context dict that goes to the logs, never to the client.
    """

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = str(message)
        if code:
            self.code = code
        self.context = context or {}
        super().__init__(self.message)

    def user_message(self) -> str:
        return _USER_MESSAGES.get(self.code) or self.message or "An unexpected error occurred."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "context": {k: v for k, v in self.context.items() if k != "original_error"},
        }


class ConfigError(PushgateError):
    """Bad route, bad shape or bad configuration. Aborts the whole call."""

    code = "CONFIG_INVALID"
    status_code = 400


class RouteNotFoundError(ConfigError):
    code = "ROUTE_NOT_FOUND"
    status_code = 404

    def __init__(self, route_name: str, available: Optional[list] = None):
        self.route_name = route_name
        super().__init__(
            f'Route "{route_name}" not found',
            context={"route": route_name, "available": list(available or [])},
        )


class ValidationError(PushgateError):
    """Constraint failure. Per file, unless raised for a whole batch."""

    code = "FILE_VALIDATION_FAILED"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None, path: Optional[list] = None):
        self.path = list(path or [])
        super().__init__(message, code=code, context={"path": self.path})


class MiddlewareRejection(PushgateError):
    """Raise from middleware to reject one file with a displayable message."""

    code = "MIDDLEWARE_REJECTED"
    status_code = 403


class ProviderError(PushgateError):
    code = "PRESIGNED_URL_FAILED"
    status_code = 502


class TransportError(PushgateError):
    """Client-side transfer failure."""

    code = "UPLOAD_FAILED"
    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = True):
        self.status = status
        self.retryable = retryable
        super().__init__(message, context={"status": status})


class CancellationError(PushgateError):
    code = "UPLOAD_CANCELLED"
    status_code = 499

    def __init__(self, message: str = "Upload cancelled"):
        super().__init__(message)


_USER_MESSAGES = {
    "CONFIG_MISSING": "Upload configuration is missing. Please set up your storage provider configuration.",
    "CONFIG_INVALID": "Upload configuration is invalid. Please check your provider settings.",
    "S3_ACCESS_DENIED": "Access denied. Please check your storage credentials and bucket permissions.",
    "S3_BUCKET_NOT_FOUND": "Bucket not found. Please check the bucket name and permissions.",
    "FILE_NOT_FOUND": "File not found.",
    "FILE_TOO_LARGE": "File is too large. Please choose a smaller file.",
    "INVALID_FILE_TYPE": "File type is not allowed. Please choose a different file type.",
    "UPLOAD_FAILED": "Upload failed. Please try again.",
    "NETWORK_ERROR": "Network error. Please check your internet connection.",
    "UPLOAD_CANCELLED": "Upload cancelled.",
}


def map_client_error(e: ClientError, operation: str = "", key: Optional[str] = None) -> ProviderError:
    """Classify a botocore ClientError into a ProviderError with a hint."""
    err = e.response.get("Error", {}) or {}
    meta = e.response.get("ResponseMetadata", {}) or {}

    aws_code: str = err.get("Code", "")
    msg: str = err.get("Message", "") or str(e)
    http_status: int = int(meta.get("HTTPStatusCode", 500))

    code = "S3_CONNECTION_FAILED"
    hint = None

    if aws_code in {"NoSuchKey", "NotFound", "404"}:
        code = "FILE_NOT_FOUND"
        hint = "Key does not exist or is not committed yet."
    elif aws_code == "NoSuchBucket":
        code = "S3_BUCKET_NOT_FOUND"
        hint = "Check the bucket name and region."
    elif aws_code in {"AccessDenied", "403"}:
        code = "S3_ACCESS_DENIED"
        hint = "Check IAM / bucket policy (s3:PutObject/GetObject/HeadObject)."
    elif aws_code == "SignatureDoesNotMatch":
        code = "S3_ACCESS_DENIED"
        hint = "Check region vs bucket region and clock sync."
    elif aws_code in {"RequestTimeout", "SlowDown", "Throttling"}:
        code = "S3_THROTTLED"
        hint = "Throttled by storage; retry shortly."
    elif 500 <= http_status < 600:
        hint = "Temporary storage outage; retry shortly."

    return ProviderError(
        msg,
        code=code,
        context={
            "operation": operation,
            "key": key,
            "aws_code": aws_code,
            "aws_http": http_status,
            "aws_request_id": meta.get("RequestId"),
            "hint": hint,
        },
    )
