from botocore.exceptions import ClientError

from pushgate import CancellationError, ProviderError, RouteNotFoundError, TransportError
from pushgate.core.errors import map_client_error


def _client_error(code, status):
    return ClientError(
        {"Error": {"Code": code, "Message": f"{code} happened"}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "PutObject",
    )


def test_client_error_mapping():
    cases = {
        ("NoSuchKey", 404): "FILE_NOT_FOUND",
        ("NoSuchBucket", 404): "S3_BUCKET_NOT_FOUND",
        ("AccessDenied", 403): "S3_ACCESS_DENIED",
        ("SignatureDoesNotMatch", 403): "S3_ACCESS_DENIED",
        ("SlowDown", 503): "S3_THROTTLED",
        ("InternalError", 500): "S3_CONNECTION_FAILED",
    }
    for (aws_code, status), expected in cases.items():
        err = map_client_error(_client_error(aws_code, status), "put_object", "k")
        assert isinstance(err, ProviderError)
        assert err.code == expected, aws_code
        assert err.context["aws_http"] == status
        assert err.context["key"] == "k"


def test_to_dict_hides_original_error():
    err = ProviderError("boom", context={"key": "k", "original_error": RuntimeError("secret")})
    d = err.to_dict()
    assert d["context"] == {"key": "k"}
    assert d["name"] == "ProviderError"
    assert err.status_code == 502


def test_user_messages():
    assert CancellationError().message == "Upload cancelled"
    assert CancellationError().user_message() == "Upload cancelled."
    assert TransportError("x").user_message() == "Upload failed. Please try again."
    e = RouteNotFoundError("r", ["a", "b"])
    assert e.user_message() == 'Route "r" not found'
    assert e.context["available"] == ["a", "b"]
