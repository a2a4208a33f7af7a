from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Sequence

from .audit import JsonAuditLogger
from .batch import run_batch
from .config import ToolkitSettings
from .models import (
    SKU_COLUMNS,
    USER_COLUMNS,
    DeletedPrincipalRecord,
    OperationResult,
    TemporaryAccessPassRequest,
    UserRecord,
)
from .operations import DirectoryOperations
from .passwords import generate_password

Row = Dict[str, Any]


@dataclass
class TaskContext:
    operations: DirectoryOperations
    settings: ToolkitSettings
    audit: JsonAuditLogger
    password_factory: Callable[[], str] = generate_password


@dataclass
class Report:
    fieldnames: Sequence[str]
    rows: List[Row]
    results: List[OperationResult] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.succeeded)


@dataclass(frozen=True)
class Task:
    name: str
    prefix: str
    run: Callable[[TaskContext, List[Row]], Report]
    requires_input: bool = False
    help: str = ""


def _row_upn(row: Mapping[str, Any]) -> str:
    return (row.get("UserPrincipalName") or "").strip() or "<missing UserPrincipalName>"


def _row_sku_ids(row: Mapping[str, Any]) -> List[str]:
    return [(row.get(column) or "").strip() for column in SKU_COLUMNS if (row.get(column) or "").strip()]


def _status_columns(result: OperationResult) -> Row:
    return {"Status": result.status, "Error": result.reason}


def export_users(context: TaskContext, rows: List[Row]) -> Report:
    users = context.operations.list_users()
    records = [UserRecord.from_graph(user) for user in users if user.get("userPrincipalName")]
    context.audit.info("users_listed", count=len(records))
    return Report(USER_COLUMNS, [record.to_row() for record in records])


def build_user_payload(record: UserRecord, password: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = record.graph_properties()
    payload["mailNickname"] = record.default_mail_nickname
    payload["accountEnabled"] = True
    payload["passwordProfile"] = {
        "forceChangePasswordNextSignIn": True,
        "password": password,
    }
    return payload


def create_users(context: TaskContext, rows: List[Row]) -> Report:
    def create(row: Row) -> Dict[str, Any]:
        record = UserRecord.from_row(row)
        password = record.password or context.password_factory()
        user_id = context.operations.create_user(build_user_payload(record, password))
        return {"Id": user_id, "Password": password}

    results = run_batch(rows, create, _row_upn, context.audit)
    report_rows = [
        {
            "UserPrincipalName": result.identifier,
            "DisplayName": (row.get("DisplayName") or "").strip(),
            "Id": result.details.get("Id", ""),
            "Password": result.details.get("Password", ""),
            **_status_columns(result),
        }
        for row, result in zip(rows, results)
    ]
    fieldnames = ["UserPrincipalName", "DisplayName", "Id", "Password", "Status", "Error"]
    return Report(fieldnames, report_rows, results)


def delete_users(context: TaskContext, rows: List[Row]) -> Report:
    def delete(row: Row) -> None:
        record = UserRecord.from_row(row)
        context.operations.delete_user(record.user_principal_name)

    results = run_batch(rows, delete, _row_upn, context.audit)
    report_rows = [
        {"UserPrincipalName": result.identifier, **_status_columns(result)} for result in results
    ]
    return Report(["UserPrincipalName", "Status", "Error"], report_rows, results)


def purge_deleted_users(context: TaskContext, rows: List[Row]) -> Report:
    deleted = context.operations.list_deleted_users()
    context.audit.info("deleted_users_listed", count=len(deleted))

    def purge(item: DeletedPrincipalRecord) -> None:
        context.operations.purge_deleted_item(item.id)

    results = run_batch(deleted, purge, lambda item: item.id, context.audit)
    report_rows = [
        {
            "Id": item.id,
            "UserPrincipalName": item.user_principal_name or "",
            **_status_columns(result),
        }
        for item, result in zip(deleted, results)
    ]
    return Report(["Id", "UserPrincipalName", "Status", "Error"], report_rows, results)


def assign_licenses(context: TaskContext, rows: List[Row]) -> Report:
    def assign(row: Row) -> None:
        record = UserRecord.from_row(row)
        if not record.sku_ids:
            raise ValueError("No SkuId columns supplied")
        context.operations.assign_licenses(record.user_principal_name, record.sku_ids)

    results = run_batch(rows, assign, _row_upn, context.audit)
    report_rows = [
        {
            "UserPrincipalName": result.identifier,
            "SkuIds": ";".join(_row_sku_ids(row)),
            **_status_columns(result),
        }
        for row, result in zip(rows, results)
    ]
    return Report(["UserPrincipalName", "SkuIds", "Status", "Error"], report_rows, results)


def access_pass_request(row: Mapping[str, Any], settings: ToolkitSettings) -> TemporaryAccessPassRequest:
    defaults = settings.access_pass
    lifetime = (row.get("LifetimeInMinutes") or "").strip()
    usable_once = (row.get("IsUsableOnce") or "").strip()
    start = (row.get("StartDateTime") or "").strip()
    return TemporaryAccessPassRequest(
        lifetime_in_minutes=lifetime or defaults.lifetime_in_minutes,
        is_usable_once=usable_once or defaults.is_usable_once,
        start_date_time=start or None,
    )


def issue_access_passes(context: TaskContext, rows: List[Row]) -> Report:
    def issue(row: Row) -> Dict[str, Any]:
        record = UserRecord.from_row(row)
        request = access_pass_request(row, context.settings)
        method = context.operations.issue_temporary_access_pass(record.user_principal_name, request)
        return {
            "TemporaryAccessPass": method.get("temporaryAccessPass", ""),
            "StartDateTime": method.get("startDateTime") or "",
            "LifetimeInMinutes": method.get("lifetimeInMinutes", request.lifetime_in_minutes),
            "IsUsableOnce": method.get("isUsableOnce", request.is_usable_once),
        }

    results = run_batch(rows, issue, _row_upn, context.audit)
    fieldnames = [
        "UserPrincipalName",
        "TemporaryAccessPass",
        "StartDateTime",
        "LifetimeInMinutes",
        "IsUsableOnce",
        "Status",
        "Error",
    ]
    report_rows = [
        {
            "UserPrincipalName": result.identifier,
            "TemporaryAccessPass": result.details.get("TemporaryAccessPass", ""),
            "StartDateTime": result.details.get("StartDateTime", ""),
            "LifetimeInMinutes": result.details.get("LifetimeInMinutes", ""),
            "IsUsableOnce": result.details.get("IsUsableOnce", ""),
            **_status_columns(result),
        }
        for result in results
    ]
    return Report(fieldnames, report_rows, results)


def list_user_licenses(context: TaskContext, rows: List[Row]) -> Report:
    part_numbers = {sku.sku_id: sku.sku_part_number for sku in context.operations.list_subscribed_skus()}
    users = context.operations.list_users(
        ["id", "userPrincipalName", "displayName", "accountEnabled", "assignedLicenses"]
    )
    report_rows = []
    for user in users:
        sku_ids = [lic["skuId"] for lic in user.get("assignedLicenses") or [] if lic.get("skuId")]
        report_rows.append(
            {
                "UserPrincipalName": user.get("userPrincipalName") or "",
                "DisplayName": user.get("displayName") or "",
                "AccountEnabled": user.get("accountEnabled", ""),
                "SkuIds": ";".join(sku_ids),
                "SkuPartNumbers": ";".join(part_numbers.get(sku_id, sku_id) for sku_id in sku_ids),
            }
        )
    context.audit.info("user_licenses_listed", count=len(report_rows))
    fieldnames = ["UserPrincipalName", "DisplayName", "AccountEnabled", "SkuIds", "SkuPartNumbers"]
    return Report(fieldnames, report_rows)


def list_skus(context: TaskContext, rows: List[Row]) -> Report:
    report_rows = [
        {
            "SkuId": sku.sku_id,
            "SkuPartNumber": sku.sku_part_number,
            "ConsumedUnits": sku.consumed_units,
            "EnabledUnits": sku.enabled_units,
        }
        for sku in context.operations.list_subscribed_skus()
    ]
    return Report(["SkuId", "SkuPartNumber", "ConsumedUnits", "EnabledUnits"], report_rows)


TASKS: Dict[str, Task] = {
    task.name: task
    for task in (
        Task("export-users", "UserList", export_users, help="Export all users to CSV"),
        Task("create-users", "CreatedUsers", create_users, True, "Create users from a CSV file"),
        Task("delete-users", "DeletedUsers", delete_users, True, "Delete users listed in a CSV file"),
        Task(
            "purge-deleted-users",
            "PurgedDeletedUsers",
            purge_deleted_users,
            help="Permanently remove soft-deleted users",
        ),
        Task("assign-licenses", "LicenseAssignments", assign_licenses, True, "Assign SkuId1..3 to users"),
        Task(
            "issue-access-passes",
            "TemporaryAccessPasses",
            issue_access_passes,
            True,
            "Issue Temporary Access Passes to users",
        ),
        Task(
            "list-user-licenses",
            "RegisteredUsersList",
            list_user_licenses,
            help="List users with their assigned licenses",
        ),
        Task("list-skus", "SubscribedSkus", list_skus, help="List subscribed license SKUs"),
    )
}
