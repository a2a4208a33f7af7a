from __future__ import annotations

from typing import Any, Dict, Iterator, Optional

import httpx

from .audit import JsonAuditLogger
from .auth import GraphAuthenticator
from .config import ToolkitSettings


class GraphAPIError(Exception):
    """Raised when Graph answers a request with an error status."""

    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.message = message
        self.url = url
        super().__init__(message)

    @classmethod
    def from_response(cls, response: httpx.Response) -> "GraphAPIError":
        message = response.text or response.reason_phrase
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message") or body["error"].get("code") or message
        return cls(response.status_code, message, str(response.request.url))


class GraphClient:
    """Tenant-scoped Microsoft Graph client with request logging.

    Requests are issued one at a time and are not retried; any status of 400 or
    above raises :class:`GraphAPIError`.
    """

    def __init__(
        self,
        settings: ToolkitSettings,
        authenticator: GraphAuthenticator,
        audit_logger: JsonAuditLogger,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.settings = settings
        self.authenticator = authenticator
        self.audit = audit_logger
        self.session = httpx.Client(timeout=settings.timeout, transport=transport)

    def _auth_header(self) -> Dict[str, str]:
        token = self.authenticator.acquire_token(self.settings.scopes)
        return {"Authorization": f"Bearer {token}"}

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.settings.graph_base_url}/{path.lstrip('/')}"

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = self._url(path)
        headers = kwargs.pop("headers", {})
        headers.update(self._auth_header())

        response = self.session.request(method, url, headers=headers, **kwargs)
        if response.status_code >= 400:
            error = GraphAPIError.from_response(response)
            self.audit.error(
                "graph_request_failed",
                method=method,
                status=response.status_code,
                url=url,
                error=error.message,
            )
            raise error

        self.audit.debug(
            "graph_request_succeeded",
            method=method,
            status=response.status_code,
            url=url,
        )
        return response

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, json: Any, **kwargs: Any) -> httpx.Response:
        return self.request("POST", path, json=json, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("DELETE", path, **kwargs)

    def iter_pages(self, path: str, params: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        """Yield every item of a collection, following ``@odata.nextLink``."""
        next_url: Optional[str] = path
        next_params = params
        while next_url:
            data = self.get(next_url, params=next_params).json()
            yield from data.get("value", [])
            next_url = data.get("@odata.nextLink")
            # nextLink already carries the original query string.
            next_params = None

    def close(self) -> None:
        self.session.close()
