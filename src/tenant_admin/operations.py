from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import quote

from .models import DeletedPrincipalRecord, LicenseSku, TemporaryAccessPassRequest
from .session import DirectorySession

DEFAULT_USER_PROPERTIES: Sequence[str] = (
    "id",
    "userPrincipalName",
    "displayName",
    "givenName",
    "surname",
    "jobTitle",
    "employeeId",
    "employeeType",
    "department",
    "city",
    "state",
    "country",
    "streetAddress",
    "postalCode",
    "usageLocation",
    "mailNickname",
    "accountEnabled",
    "assignedLicenses",
)


def _user_path(user: str) -> str:
    # Guest UPNs contain '#EXT#', which must not be read as a URL fragment.
    return f"/users/{quote(user, safe='@')}"


class DirectoryOperations:
    """Directory calls executed within an open :class:`DirectorySession`."""

    def __init__(self, session: DirectorySession, page_size: int = 999):
        self.session = session
        self.page_size = page_size

    @property
    def graph(self):
        return self.session.graph

    def list_users(self, properties: Iterable[str] = DEFAULT_USER_PROPERTIES) -> List[Dict[str, Any]]:
        params = {"$select": ",".join(properties), "$top": str(self.page_size)}
        return list(self.graph.iter_pages("/users", params=params))

    def create_user(self, payload: Dict[str, Any]) -> str:
        response = self.graph.post("/users", json=payload)
        return response.json()["id"]

    def delete_user(self, user: str) -> None:
        self.graph.delete(_user_path(user))

    def list_deleted_users(self) -> List[DeletedPrincipalRecord]:
        params = {"$select": "id,userPrincipalName", "$top": str(self.page_size)}
        items = self.graph.iter_pages("/directory/deletedItems/microsoft.graph.user", params=params)
        return [DeletedPrincipalRecord.model_validate(item) for item in items]

    def purge_deleted_item(self, object_id: str) -> None:
        self.graph.delete(f"/directory/deletedItems/{quote(object_id, safe='')}")

    def assign_licenses(
        self,
        user: str,
        sku_ids: Sequence[str],
        remove_sku_ids: Optional[Sequence[str]] = None,
    ) -> None:
        payload = {
            "addLicenses": [{"skuId": sku_id, "disabledPlans": []} for sku_id in sku_ids],
            "removeLicenses": list(remove_sku_ids or []),
        }
        self.graph.post(f"{_user_path(user)}/assignLicense", json=payload)

    def issue_temporary_access_pass(
        self,
        user: str,
        request: TemporaryAccessPassRequest,
    ) -> Dict[str, Any]:
        response = self.graph.post(
            f"{_user_path(user)}/authentication/temporaryAccessPassMethods",
            json=request.payload(),
        )
        return response.json()

    def list_subscribed_skus(self) -> List[LicenseSku]:
        data = self.graph.get("/subscribedSkus").json()
        return [LicenseSku.from_graph(sku) for sku in data.get("value", [])]
