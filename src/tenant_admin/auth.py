from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import msal

from .audit import JsonAuditLogger
from .config import Credential, ToolkitSettings


class AuthenticationError(RuntimeError):
    """Raised when the identity provider refuses to issue a token."""


class GraphAuthenticator:
    """Acquires app-only Microsoft Graph tokens with the client-credential flow.

    Tokens are cached in memory by MSAL, so repeated calls within a run reuse
    the token until it nears expiry.
    """

    def __init__(
        self,
        credential: Credential,
        settings: ToolkitSettings,
        audit_logger: JsonAuditLogger,
    ):
        self.credential = credential
        self.settings = settings
        self.audit = audit_logger
        self._app: Optional[msal.ConfidentialClientApplication] = None

    def _application(self) -> msal.ConfidentialClientApplication:
        if self._app is None:
            self._app = msal.ConfidentialClientApplication(
                client_id=self.credential.client_id,
                client_credential=self.credential.client_secret.get_secret_value(),
                authority=f"{self.settings.authority_host}/{self.credential.tenant_id}",
                token_cache=msal.TokenCache(),
            )
        return self._app

    def acquire_token(self, scopes: Optional[Iterable[str]] = None) -> str:
        scope_list = list(scopes or self.settings.scopes)
        try:
            app = self._application()
            result = app.acquire_token_silent(scope_list, account=None)
            if not result:
                result = app.acquire_token_for_client(scopes=scope_list)
        except Exception as exc:  # noqa: BLE001
            # MSAL surfaces unknown tenants and transport failures as assorted exception types.
            raise AuthenticationError(f"Token acquisition failed: {exc}") from exc

        token = self._extract_token(result)
        self.audit.debug(
            "acquired_app_token",
            tenant_id=self.credential.tenant_id,
            auth_type="client_secret",
        )
        return token

    @staticmethod
    def _extract_token(result: Optional[Dict[str, Any]]) -> str:
        if not result or "access_token" not in result:
            result = result or {}
            description = result.get("error_description") or result.get("error") or "no token returned"
            raise AuthenticationError(f"Token acquisition failed: {description}")
        return result["access_token"]
