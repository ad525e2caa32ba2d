# pushgate/engine/handler.py
"""
Framework-neutral request handling.

Adapters turn their host request into a HandlerRequest and send the
HandlerResponse back. No business logic belongs in an adapter.

    GET  {endpoint}                                  -> route introspection
    POST {endpoint}?route=<name>&action=presign      -> presigned URLs
    POST {endpoint}?route=<name>&action=complete     -> completion side effects
"""
from __future__ import annotations

import json
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

from pydantic import ValidationError as PydanticValidationError

from pushgate.core.errors import PushgateError
from pushgate.core.logging_config import get_logger
from pushgate.core.settings import get_settings
from pushgate.observability.metrics import track_latency
from pushgate.schemas.uploads import CompleteBody, ErrorEnvelope, PresignBody, RouteInfo

logger = get_logger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}
ACTIONS = ("presign", "complete")


@dataclass
class HandlerRequest:
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def query(self) -> Dict[str, str]:
        return dict(parse_qsl(urlsplit(self.url).query))

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8") if self.body else "")

    @classmethod
    def build(
        cls,
        method: str,
        path: str = "/",
        query: Optional[Mapping[str, str]] = None,
        json_body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> "HandlerRequest":
        url = path + (f"?{urlencode(dict(query))}" if query else "")
        body = json.dumps(json_body).encode("utf-8") if json_body is not None else b""
        return cls(method=method.upper(), url=url, headers=dict(headers or {}), body=body)


@dataclass
class HandlerResponse:
    status: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=lambda: dict(JSON_HEADERS))

    def content(self) -> bytes:
        return json.dumps(self.body, default=str).encode("utf-8")


def _ok(body: Dict[str, Any]) -> HandlerResponse:
    return HandlerResponse(status=200, body={"success": True, **body})


def _error(status: int, message: str, details: Any = None, headers: Optional[Dict[str, str]] = None) -> HandlerResponse:
    envelope = ErrorEnvelope(error=message, details=details).to_wire()
    return HandlerResponse(status=status, body=envelope, headers={**JSON_HEADERS, **(headers or {})})


class UniversalHandler:
    def __init__(self, router, debug: Optional[bool] = None) -> None:
        self.router = router
        self.debug = get_settings().debug if debug is None else debug

    async def __call__(self, request: HandlerRequest) -> HandlerResponse:
        method = (request.method or "").upper()
        if method == "GET":
            return await self.get(request)
        if method == "POST":
            return await self.post(request)
        return _error(405, f"Method {method} not allowed", headers={"Allow": "GET, POST"})

    async def get(self, request: HandlerRequest) -> HandlerResponse:
        return await self._guarded(self._get, request)

    async def post(self, request: HandlerRequest) -> HandlerResponse:
        return await self._guarded(self._post, request)

    async def _guarded(self, action, request: HandlerRequest) -> HandlerResponse:
        try:
            return await action(request)
        except PydanticValidationError as e:
            details = e.errors(include_url=False, include_context=False, include_input=False) if self.debug else None
            return _error(400, "Invalid request body", details)
        except PushgateError as e:
            if e.status_code >= 500:
                logger.error("handler_error", code=e.code, error=e.message, context=e.to_dict()["context"])
            return _error(e.status_code, e.message, e.to_dict() if self.debug else None)
        except Exception as e:
            logger.exception("handler_unhandled_error", error=f"{type(e).__name__}: {e}")
            if self.debug:
                return _error(500, str(e) or type(e).__name__, {
                    "type": type(e).__name__,
                    "traceback": traceback.format_exc(),
                })
            return _error(500, "Internal server error")

    async def _get(self, request: HandlerRequest) -> HandlerResponse:
        with track_latency("introspect"):
            routes = [
                RouteInfo(name=name, type=self.router.get_route(name).kind).to_wire()
                for name in self.router.route_names()
            ]
        return _ok({"routes": routes})

    async def _post(self, request: HandlerRequest) -> HandlerResponse:
        query = request.query
        route_name = query.get("route")
        action = query.get("action")

        if not route_name:
            return _error(400, "Route parameter is required")
        if not action:
            return _error(400, "Action parameter is required")
        if self.router.get_route(route_name) is None:
            return _error(404, f'Route "{route_name}" not found')
        if action not in ACTIONS:
            return _error(400, f"Unknown action: {action}")

        try:
            payload = request.json()
        except (ValueError, UnicodeDecodeError) as e:
            return _error(400, "Invalid JSON body", str(e) if self.debug else None)

        if action == "presign":
            body = PresignBody.model_validate(payload)
            with track_latency("presign"):
                results = await self.router.generate_presigned_urls(
                    route_name, request, body.files, body.metadata
                )
        else:
            body = CompleteBody.model_validate(payload)
            with track_latency("complete"):
                results = await self.router.handle_upload_complete(route_name, request, body.completions)

        return _ok({"results": [r.to_wire() for r in results]})


def create_universal_handler(router, debug: Optional[bool] = None) -> UniversalHandler:
    return UniversalHandler(router, debug=debug)
