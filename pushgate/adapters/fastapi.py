# pushgate/adapters/fastapi.py
import time

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pushgate.core.logging_config import logger, setup_logging
from pushgate.core.settings import get_settings
from pushgate.engine.handler import HandlerRequest, HandlerResponse, UniversalHandler
from pushgate.observability.health import run_health_checks
from pushgate.observability.metrics import router as metrics_router


# -----------------------------------------------------------------------------
# Boundary conversion only: starlette Request <-> HandlerRequest/Response
# -----------------------------------------------------------------------------
async def to_handler_request(request: Request) -> HandlerRequest:
    return HandlerRequest(
        method=request.method,
        url=str(request.url),
        headers=dict(request.headers),
        body=await request.body(),
    )


def to_json_response(response: HandlerResponse) -> JSONResponse:
    headers = {k: v for k, v in response.headers.items() if k.lower() != "content-type"}
    return JSONResponse(status_code=response.status, content=response.body, headers=headers)


def create_upload_router(handler: UniversalHandler, path: str = "/api/upload") -> APIRouter:
    router = APIRouter(tags=["uploads"])

    @router.get(path)
    async def list_upload_routes(request: Request) -> JSONResponse:
        return to_json_response(await handler.get(await to_handler_request(request)))

    @router.post(path)
    async def upload_action(request: Request) -> JSONResponse:
        return to_json_response(await handler.post(await to_handler_request(request)))

    return router


# ----------------------------------------------------
# App factory
# ----------------------------------------------------
def create_app(upload_router, path: str = "/api/upload", title: str = "pushgate") -> FastAPI:
    """FastAPI app with the upload endpoint, /health and /metrics."""
    settings = get_settings()
    setup_logging()

    app = FastAPI(title=title, version="0.1.0")
    app.include_router(create_upload_router(upload_router.handlers, path))
    if settings.metrics_enabled:
        app.include_router(metrics_router)  # /metrics

    @app.get("/health", include_in_schema=True)
    async def health() -> JSONResponse:
        report = await run_health_checks(upload_router.config, upload_router)
        status = 503 if report.status == "error" else 200
        return JSONResponse(status_code=status, content=report.to_dict())

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        start = time.time()
        bound_logger = logger.bind(
            request_id=request.headers.get("X-Request-ID", "unknown"),
            endpoint=str(request.url.path),
            method=request.method,
            route=request.query_params.get("route"),
            action=request.query_params.get("action"),
        )
        response = await call_next(request)
        latency_ms = round((time.time() - start) * 1000, 2)
        bound_logger.bind(status_code=response.status_code, latency_ms=latency_ms).info("request_finished")
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    logger.info("startup", service=title, routes=upload_router.route_names())
    return app
