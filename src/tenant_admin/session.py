from __future__ import annotations

from typing import Optional

import httpx

from .audit import JsonAuditLogger
from .auth import GraphAuthenticator
from .config import Credential, ToolkitSettings
from .graph_client import GraphClient


class DirectorySession:
    """Authenticated handle on one tenant's directory.

    Returned by :func:`connect` and passed explicitly to every directory
    operation. Use it as a context manager so it is always disconnected.
    """

    def __init__(self, tenant_id: str, graph: GraphClient, audit_logger: JsonAuditLogger):
        self.tenant_id = tenant_id
        self.graph = graph
        self.audit = audit_logger
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "DirectorySession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    def disconnect(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.graph.close()
        except Exception as exc:  # noqa: BLE001
            self.audit.warning("session_disconnect_failed", tenant_id=self.tenant_id, error=str(exc))
            return
        self.audit.info("session_disconnected", tenant_id=self.tenant_id)


def connect(
    credential: Credential,
    settings: ToolkitSettings,
    audit_logger: JsonAuditLogger,
    transport: Optional[httpx.BaseTransport] = None,
) -> DirectorySession:
    """Authenticate against the tenant and return an open session.

    The first token is acquired here so bad credentials fail before any
    directory call is attempted. Raises ``AuthenticationError``.
    """
    authenticator = GraphAuthenticator(credential, settings, audit_logger)
    authenticator.acquire_token(settings.scopes)
    graph = GraphClient(settings, authenticator, audit_logger, transport=transport)
    audit_logger.info(
        "session_connected",
        tenant_id=credential.tenant_id,
        client_id=credential.client_id,
    )
    return DirectorySession(credential.tenant_id, graph, audit_logger)
