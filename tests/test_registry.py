import asyncio

import pytest

from pushgate import (
    ConfigError,
    MiddlewareRejection,
    Route,
    RouteNotFoundError,
    UploadConfig,
    UploadDefaults,
    ValidationError,
    create_router,
    file,
    image,
    object,
)
from pushgate.services.storage import MemoryProvider

MB = 1024 * 1024


def _file(name, size, type="image/jpeg", **extra):
    return {"name": name, "size": size, "type": type, **extra}


def _router(config, **routes):
    return create_router(routes, config)


# -------------------------
# Construction
# -------------------------
def test_schemas_are_wrapped_and_named(router):
    assert router.route_names() == ["imageUpload", "documentUpload"]
    route = router.get_route("imageUpload")
    assert isinstance(route, Route)
    assert route.name == "imageUpload"
    assert route.kind == "image"
    assert router.get_route("nope") is None


def test_invalid_routes_rejected(config):
    with pytest.raises(ConfigError):
        create_router({"": file()}, config)
    with pytest.raises(ConfigError):
        create_router({"x": "not a schema"}, config)


def test_route_table_is_read_only(router):
    with pytest.raises(TypeError):
        router._routes["new"] = Route(file())


def test_defaults_apply_to_unconstrained_schemas(provider):
    config = UploadConfig(provider=provider, defaults=UploadDefaults(max_file_size="1MB"))
    r = create_router({"a": file(), "b": file(max_size="3MB")}, config)
    assert r.get_route("a").schema.constraints.max_size == MB
    assert r.get_route("b").schema.constraints.max_size == 3 * MB


# -------------------------
# Presign
# -------------------------
@pytest.mark.anyio
async def test_one_result_per_file_in_input_order(config):
    async def slow_first(ctx):
        # first file finishes last
        await asyncio.sleep(0.02 if ctx.file.name == "0.jpg" else 0)
        return None

    router = _router(config, imgs=image().middleware(slow_first))
    files = [_file(f"{i}.jpg", 100) for i in range(5)]
    results = await router.generate_presigned_urls("imgs", None, files)

    assert [r.file.name for r in results] == [f["name"] for f in files]
    assert all(r.success for r in results)
    assert all(r.presigned_url.startswith("https://storage.local/bucket/uploads/") for r in results)


@pytest.mark.anyio
async def test_partial_failure(router, provider):
    results = await router.generate_presigned_urls(
        "imageUpload",
        None,
        [_file("ok.jpg", 3 * MB), _file("big.png", 11 * MB, "image/png"), _file("doc.pdf", 10, "application/pdf")],
    )
    assert [r.success for r in results] == [True, False, False]
    assert "exceeds maximum" in results[1].error
    assert "not allowed" in results[2].error
    # storage never signs rejected files
    assert list(provider.issued) == [results[0].key]


@pytest.mark.anyio
async def test_unknown_route(router):
    with pytest.raises(RouteNotFoundError) as exc:
        await router.generate_presigned_urls("missing", None, [_file("a.jpg", 1)])
    assert exc.value.status_code == 404
    assert str(exc.value) == 'Route "missing" not found'


@pytest.mark.anyio
async def test_batch_count_violation_fails_whole_call(config):
    router = _router(config, gallery=image().array(max=2))
    with pytest.raises(ValidationError) as exc:
        await router.generate_presigned_urls("gallery", None, [_file(f"{i}.jpg", 1) for i in range(3)])
    assert exc.value.code == "ARRAY_TOO_LONG"


@pytest.mark.anyio
async def test_missing_required_object_field_fails_whole_call(config, provider):
    router = _router(config, post=object({"cover": image(), "notes": file().optional()}))
    with pytest.raises(ValidationError) as exc:
        await router.generate_presigned_urls(
            "post", None, [_file("n.txt", 10, type="text/plain", field="notes")]
        )
    assert exc.value.code == "INVALID_TYPE"
    assert provider.issued == {}

    [ok] = await router.generate_presigned_urls("post", None, [_file("c.jpg", 10, field="cover")])
    assert ok.success


@pytest.mark.anyio
async def test_middleware_runs_in_order_and_threads_metadata(config):
    seen = []

    def a(ctx):
        seen.append(("a", dict(ctx.metadata)))
        return {**ctx.metadata, "userId": "u42", "step": "a"}

    async def b(ctx):
        seen.append(("b", dict(ctx.metadata)))
        return {**ctx.metadata, "step": "b"}

    router = _router(config, avatars=image().middleware(a).middleware(b))
    [result] = await router.generate_presigned_urls("avatars", {"user": "req"}, [_file("me.jpg", 5)], {"client": 1})

    assert [name for name, _ in seen] == ["a", "b"]
    assert seen[0][1] == {"client": 1}
    assert seen[1][1] == {"client": 1, "userId": "u42", "step": "a"}
    assert result.metadata == {"client": 1, "userId": "u42", "step": "b"}
    assert result.key == "uploads/u42/1700000000000/abc123/me.jpg"


@pytest.mark.anyio
async def test_middleware_none_keeps_metadata_and_sees_request(config):
    requests = []

    def peek(ctx):
        requests.append(ctx.req)

    router = _router(config, r=file().middleware(peek))
    [result] = await router.generate_presigned_urls("r", "REQ", [_file("a.txt", 1, "text/plain")], {"k": "v"})
    assert requests == ["REQ"]
    assert result.metadata == {"k": "v"}


@pytest.mark.anyio
async def test_middleware_rejection_is_per_file(config):
    errors = []

    def only_jpgs(ctx):
        if not ctx.file.name.endswith(".jpg"):
            raise MiddlewareRejection("Only holiday photos")
        return {"checked": True}

    route = file().middleware(only_jpgs).on_upload_error(lambda ctx: errors.append((ctx.file.name, ctx.error)))
    router = _router(config, r=route)
    results = await router.generate_presigned_urls("r", None, [_file("a.jpg", 1), _file("b.gif", 1)])

    assert results[0].success and results[0].metadata == {"checked": True}
    assert not results[1].success
    assert results[1].error == "Only holiday photos"
    assert errors[0][0] == "b.gif"
    assert isinstance(errors[0][1], MiddlewareRejection)


@pytest.mark.anyio
async def test_middleware_must_return_dict(config):
    router = _router(config, r=file().middleware(lambda ctx: "nope"))
    [result] = await router.generate_presigned_urls("r", None, [_file("a.jpg", 1)])
    assert not result.success
    assert "dict" in result.error


@pytest.mark.anyio
async def test_provider_failure_is_generic_for_client(config, key_factory):
    provider = MemoryProvider(fail_when=lambda key: key.endswith("bad.jpg"))
    failing = UploadConfig(provider=provider, key_factory=key_factory)
    errors = []
    router = create_router({"r": image().on_upload_error(lambda ctx: errors.append(ctx.key))}, failing)

    results = await router.generate_presigned_urls("r", None, [_file("good.jpg", 1), _file("bad.jpg", 1)])
    assert results[0].success
    assert results[1].error == "Failed to generate presigned URL"
    assert errors == ["uploads/anonymous/1700000000000/abc123/bad.jpg"]


@pytest.mark.anyio
async def test_hooks_are_best_effort(config):
    def explode(ctx):
        raise RuntimeError("hook down")

    route = image().on_upload_start(explode).on_upload_error(explode).on_upload_complete(explode)
    router = _router(config, r=route)

    results = await router.generate_presigned_urls("r", None, [_file("a.jpg", 1), _file("a.gif", 1, "text/plain")])
    assert [r.success for r in results] == [True, False]

    [done] = await router.handle_upload_complete("r", None, [{"key": results[0].key, "file": _file("a.jpg", 1)}])
    assert done.success


@pytest.mark.anyio
async def test_start_hook_sees_key(config):
    started = []

    async def on_start(ctx):
        started.append((ctx.route_name, ctx.key))

    router = _router(config, r=image().on_upload_start(on_start))
    [result] = await router.generate_presigned_urls("r", None, [_file("a.jpg", 1)])
    assert started == [("r", result.key)]


# -------------------------
# Complete
# -------------------------
@pytest.mark.anyio
async def test_complete_resolves_urls_and_runs_hook(config):
    completed = []
    router = _router(config, r=image().on_upload_complete(lambda ctx: completed.append((ctx.key, ctx.url, ctx.metadata))))

    results = await router.handle_upload_complete(
        "r",
        None,
        [{"key": "uploads/u1/a.jpg", "file": _file("a.jpg", 1), "metadata": {"userId": "u1"}}],
    )
    [r] = results
    assert r.success
    assert r.url == "https://storage.local/bucket/uploads/u1/a.jpg"
    assert r.presigned_url.startswith(r.url + "?X-Amz-Expires=3600")
    assert completed == [("uploads/u1/a.jpg", r.url, {"userId": "u1"})]


@pytest.mark.anyio
async def test_complete_provider_failure_is_per_item(config, key_factory):
    class Flaky(MemoryProvider):
        def get_file_url(self, key):
            if "broken" in key:
                raise RuntimeError("no url")
            return super().get_file_url(key)

    router = create_router({"r": file()}, UploadConfig(provider=Flaky(), key_factory=key_factory))
    results = await router.handle_upload_complete(
        "r",
        None,
        [{"key": "ok.txt", "file": _file("ok.txt", 1)}, {"key": "broken.txt", "file": _file("broken.txt", 1)}],
    )
    assert [r.success for r in results] == [True, False]
    assert results[1].error == "Failed to resolve uploaded file"
    assert results[1].key == "broken.txt"
