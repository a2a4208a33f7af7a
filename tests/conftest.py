from __future__ import annotations

import io
import json
import uuid
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from tenant_admin import auth
from tenant_admin.audit import JsonAuditLogger
from tenant_admin.config import Credential, ToolkitSettings
from tenant_admin.session import connect


class FakeMsalApp:
    """Stand-in for ``msal.ConfidentialClientApplication``."""

    error: Optional[Dict[str, Any]] = None
    created: List[Dict[str, Any]] = []

    def __init__(self, client_id, client_credential, authority, token_cache=None):
        FakeMsalApp.created.append(
            {"client_id": client_id, "client_credential": client_credential, "authority": authority}
        )

    def acquire_token_silent(self, scopes, account=None):
        return None

    def acquire_token_for_client(self, scopes):
        if FakeMsalApp.error is not None:
            return FakeMsalApp.error
        return {"access_token": "fake-token", "expires_in": 3600}


def _error(status: int, message: str, code: str = "Request_BadRequest") -> httpx.Response:
    return httpx.Response(status, json={"error": {"code": code, "message": message}})


class FakeGraph:
    """In-memory Microsoft Graph answering the calls the toolkit makes."""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.deleted: List[Dict[str, Any]] = []
        self.skus: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []
        self.undeletable: set = set()

    def add_user(self, upn: str, **properties: Any) -> Dict[str, Any]:
        user = {"id": str(uuid.uuid4()), "userPrincipalName": upn, "assignedLicenses": [], **properties}
        self.users[upn.lower()] = user
        return user

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != "Bearer fake-token":
            return _error(401, "Access token is empty.", "InvalidAuthenticationToken")

        parts = request.url.path.split("/")[2:]
        method = request.method

        if parts == ["users"] and method == "GET":
            return self._page(list(self.users.values()), request)
        if parts == ["users"] and method == "POST":
            return self._create_user(json.loads(request.content))
        if parts[:1] == ["users"] and len(parts) == 2 and method == "DELETE":
            return self._delete_user(parts[1])
        if parts[:1] == ["users"] and parts[2:] == ["assignLicense"]:
            return self._assign_license(parts[1], json.loads(request.content))
        if parts[:1] == ["users"] and parts[2:] == ["authentication", "temporaryAccessPassMethods"]:
            return self._issue_pass(parts[1], json.loads(request.content))
        if parts == ["directory", "deletedItems", "microsoft.graph.user"]:
            return self._page(self.deleted, request)
        if parts[:2] == ["directory", "deletedItems"] and len(parts) == 3 and method == "DELETE":
            return self._purge(parts[2])
        if parts == ["subscribedSkus"]:
            return httpx.Response(200, json={"value": self.skus})
        return _error(404, f"Unsupported fake route {method} {request.url.path}")

    def _page(self, items: List[Dict[str, Any]], request: httpx.Request) -> httpx.Response:
        query = parse_qs(request.url.query.decode())
        top = int(query.get("$top", [str(len(items) or 1)])[0])
        skip = int(query.get("$skiptoken", ["0"])[0])
        body: Dict[str, Any] = {"value": items[skip : skip + top]}
        if skip + top < len(items):
            body["@odata.nextLink"] = str(
                request.url.copy_merge_params({"$skiptoken": str(skip + top)})
            )
        return httpx.Response(200, json=body)

    def _find(self, user: str) -> Optional[Dict[str, Any]]:
        return self.users.get(user.lower())

    def _create_user(self, payload: Dict[str, Any]) -> httpx.Response:
        upn = payload.get("userPrincipalName", "")
        if "@" not in upn:
            return _error(400, "Property userPrincipalName is invalid.")
        if upn.lower() in self.users:
            return _error(400, "Another object with the same value for property userPrincipalName already exists.")
        for required in ("displayName", "mailNickname", "passwordProfile"):
            if required not in payload:
                return _error(400, f"Property {required} is required.")
        user = self.add_user(upn, **{k: v for k, v in payload.items() if k != "passwordProfile"})
        return httpx.Response(201, json=user)

    def _delete_user(self, upn: str) -> httpx.Response:
        user = self._find(upn)
        if user is None:
            return _error(404, f"Resource '{upn}' does not exist or one of its queried reference-property objects are not present.", "Request_ResourceNotFound")
        del self.users[upn.lower()]
        self.deleted.append({"id": user["id"], "userPrincipalName": user["userPrincipalName"]})
        return httpx.Response(204)

    def _purge(self, object_id: str) -> httpx.Response:
        if object_id in self.undeletable:
            return _error(403, "Insufficient privileges to complete the operation.", "Authorization_RequestDenied")
        remaining = [item for item in self.deleted if item["id"] != object_id]
        if len(remaining) == len(self.deleted):
            return _error(404, f"Resource '{object_id}' does not exist.", "Request_ResourceNotFound")
        self.deleted = remaining
        return httpx.Response(204)

    def _assign_license(self, upn: str, payload: Dict[str, Any]) -> httpx.Response:
        user = self._find(upn)
        if user is None:
            return _error(404, f"Resource '{upn}' does not exist.", "Request_ResourceNotFound")
        if not user.get("usageLocation"):
            return _error(400, "License assignment cannot be done for user with invalid usage location.")
        known = {sku["skuId"] for sku in self.skus}
        for entry in payload["addLicenses"]:
            if entry["skuId"] not in known:
                return _error(400, f"License {entry['skuId']} does not correspond to a valid company License.")
            user["assignedLicenses"].append({"skuId": entry["skuId"], "disabledPlans": []})
        return httpx.Response(200, json=user)

    def _issue_pass(self, upn: str, payload: Dict[str, Any]) -> httpx.Response:
        if self._find(upn) is None:
            return _error(404, f"Resource '{upn}' does not exist.", "Request_ResourceNotFound")
        return httpx.Response(
            201,
            json={
                "id": str(uuid.uuid4()),
                "temporaryAccessPass": "TAP-" + upn.split("@")[0],
                "startDateTime": payload.get("startDateTime", "2026-10-18T09:00:00Z"),
                "lifetimeInMinutes": payload["lifetimeInMinutes"],
                "isUsableOnce": payload["isUsableOnce"],
            },
        )


@pytest.fixture
def fake_msal(monkeypatch):
    FakeMsalApp.error = None
    FakeMsalApp.created = []
    monkeypatch.setattr(auth.msal, "ConfidentialClientApplication", FakeMsalApp)
    return FakeMsalApp


@pytest.fixture
def audit_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def audit_logger(audit_stream) -> JsonAuditLogger:
    logger = JsonAuditLogger(name=f"tenant_admin.test.{uuid.uuid4().hex}", stream=audit_stream)
    return logger


@pytest.fixture
def credential() -> Credential:
    return Credential(tenantId="contoso-tenant", clientId="app-client-id", clientSecret="s3cret!")


@pytest.fixture
def settings() -> ToolkitSettings:
    return ToolkitSettings()


@pytest.fixture
def fake_graph() -> FakeGraph:
    graph = FakeGraph()
    graph.skus = [
        {
            "skuId": "sku-e3",
            "skuPartNumber": "SPE_E3",
            "consumedUnits": 12,
            "prepaidUnits": {"enabled": 25, "suspended": 0, "warning": 0},
        },
        {
            "skuId": "sku-ems",
            "skuPartNumber": "EMS_E5",
            "consumedUnits": 3,
            "prepaidUnits": {"enabled": 5, "suspended": 0, "warning": 0},
        },
    ]
    return graph


@pytest.fixture
def connector(fake_msal, fake_graph):
    def _connect(credential, settings, audit_logger):
        return connect(credential, settings, audit_logger, transport=fake_graph.transport())

    return _connect


@pytest.fixture
def session(connector, credential, settings, audit_logger):
    directory_session = connector(credential, settings, audit_logger)
    yield directory_session
    directory_session.disconnect()


def write_csv(path, header, rows) -> None:
    lines = [",".join(header)] + [",".join(row) for row in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def audit_events(stream: io.StringIO) -> List[Dict[str, Any]]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]
