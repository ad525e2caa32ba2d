# pushgate/client/upload_client.py
"""
Explicit route map for the client.

    client = UploadClient("https://app.example.com/api/upload", ["imageUpload", "documentUpload"])
    uploader = client["imageUpload"]
    states = await uploader.upload_files([UploadFile.from_path("cat.jpg")])
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Union

import httpx

from pushgate.client.orchestrator import UploadOptions, UploadOrchestrator
from pushgate.core.errors import RouteNotFoundError, TransportError
from pushgate.schemas.uploads import RouteInfo

RouteSpec = Union[Iterable[str], Mapping[str, Optional[UploadOptions]]]


class UploadClient:
    def __init__(
        self,
        endpoint: str,
        routes: RouteSpec,
        http_client: Optional[httpx.AsyncClient] = None,
        defaults: Optional[UploadOptions] = None,
    ):
        self.endpoint = endpoint
        self.http = http_client or httpx.AsyncClient(timeout=None)
        self._owns_http = http_client is None
        self.defaults = defaults or UploadOptions()

        if isinstance(routes, Mapping):
            table = dict(routes)
        else:
            table = {name: None for name in routes}
        self._routes: Dict[str, Optional[UploadOptions]] = table
        self.route_types: Dict[str, str] = {}

    @classmethod
    async def discover(
        cls,
        endpoint: str,
        http_client: Optional[httpx.AsyncClient] = None,
        defaults: Optional[UploadOptions] = None,
    ) -> "UploadClient":
        """Build the route map from the server's GET introspection."""
        http = http_client or httpx.AsyncClient(timeout=None)
        try:
            response = await http.get(endpoint)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            if http_client is None:
                await http.aclose()
            raise TransportError(f"Route discovery failed: {e}", retryable=False) from e

        infos = [RouteInfo.model_validate(r) for r in body.get("routes", [])]
        client = cls(endpoint, [i.name for i in infos], http_client=http, defaults=defaults)
        client._owns_http = http_client is None
        client.route_types = {i.name: i.type for i in infos}
        return client

    def route_names(self) -> List[str]:
        return list(self._routes)

    def route(self, name: str, options: Optional[UploadOptions] = None) -> UploadOrchestrator:
        """Fresh orchestrator per call: per-route options, then call options, over client defaults."""
        if name not in self._routes:
            raise RouteNotFoundError(name, list(self._routes))
        opts = self.defaults.merged(self._routes[name]).merged(options)
        return UploadOrchestrator(name, self.endpoint, http_client=self.http, options=opts)

    def __getitem__(self, name: str) -> UploadOrchestrator:
        return self.route(name)

    def __contains__(self, name: object) -> bool:
        return name in self._routes

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "UploadClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
