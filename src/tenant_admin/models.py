from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SUCCESS = "Success"
FAILURE = "Failure"

# Input column -> Graph user property. Order defines the exported CSV header.
USER_FIELD_MAP: Dict[str, str] = {
    "UserPrincipalName": "userPrincipalName",
    "DisplayName": "displayName",
    "GivenName": "givenName",
    "Surname": "surname",
    "JobTitle": "jobTitle",
    "EmployeeId": "employeeId",
    "EmployeeType": "employeeType",
    "Department": "department",
    "City": "city",
    "State": "state",
    "Country": "country",
    "StreetAddress": "streetAddress",
    "PostalCode": "postalCode",
    "UsageLocation": "usageLocation",
    "MailNickname": "mailNickname",
}

SKU_COLUMNS = ["SkuId1", "SkuId2", "SkuId3"]
USER_COLUMNS: List[str] = [*USER_FIELD_MAP, "Password", *SKU_COLUMNS]


class UserRecord(BaseModel):
    """One user row of an input or export CSV.

    Optional columns may be absent or blank; blank values are normalised to
    ``None`` so presence is simply ``value is not None``.
    """

    user_principal_name: str = Field(alias="UserPrincipalName")
    display_name: Optional[str] = Field(default=None, alias="DisplayName")
    given_name: Optional[str] = Field(default=None, alias="GivenName")
    surname: Optional[str] = Field(default=None, alias="Surname")
    job_title: Optional[str] = Field(default=None, alias="JobTitle")
    employee_id: Optional[str] = Field(default=None, alias="EmployeeId")
    employee_type: Optional[str] = Field(default=None, alias="EmployeeType")
    department: Optional[str] = Field(default=None, alias="Department")
    city: Optional[str] = Field(default=None, alias="City")
    state: Optional[str] = Field(default=None, alias="State")
    country: Optional[str] = Field(default=None, alias="Country")
    street_address: Optional[str] = Field(default=None, alias="StreetAddress")
    postal_code: Optional[str] = Field(default=None, alias="PostalCode")
    usage_location: Optional[str] = Field(default=None, alias="UsageLocation")
    mail_nickname: Optional[str] = Field(default=None, alias="MailNickname")
    password: Optional[str] = Field(default=None, alias="Password")
    sku_id1: Optional[str] = Field(default=None, alias="SkuId1")
    sku_id2: Optional[str] = Field(default=None, alias="SkuId2")
    sku_id3: Optional[str] = Field(default=None, alias="SkuId3")

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UserRecord":
        # csv.DictReader yields None keys/values for ragged rows.
        return cls.model_validate({k: v for k, v in row.items() if k is not None})

    @classmethod
    def from_graph(cls, user: Mapping[str, Any]) -> "UserRecord":
        values: Dict[str, Any] = {column: user.get(prop) for column, prop in USER_FIELD_MAP.items()}
        sku_ids = [lic.get("skuId") for lic in user.get("assignedLicenses") or [] if lic.get("skuId")]
        for column, sku_id in zip(SKU_COLUMNS, sku_ids):
            values[column] = sku_id
        return cls.model_validate(values)

    @property
    def sku_ids(self) -> List[str]:
        return [sku for sku in (self.sku_id1, self.sku_id2, self.sku_id3) if sku]

    @property
    def default_mail_nickname(self) -> str:
        return self.mail_nickname or self.user_principal_name.split("@", 1)[0]

    def graph_properties(self) -> Dict[str, str]:
        """Return only the Graph properties that are present on this row."""
        by_column = self.model_dump(by_alias=True)
        return {
            prop: by_column[column]
            for column, prop in USER_FIELD_MAP.items()
            if by_column.get(column) is not None
        }

    def to_row(self, include_password: bool = False) -> Dict[str, str]:
        row = {column: value or "" for column, value in self.model_dump(by_alias=True).items()}
        if not include_password:
            row["Password"] = ""
        return row


class DeletedPrincipalRecord(BaseModel):
    id: str
    user_principal_name: Optional[str] = Field(default=None, alias="userPrincipalName")

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class LicenseSku(BaseModel):
    sku_id: str = Field(alias="skuId")
    sku_part_number: str = Field(alias="skuPartNumber")
    consumed_units: int = Field(default=0, alias="consumedUnits")
    enabled_units: int = 0

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @classmethod
    def from_graph(cls, sku: Mapping[str, Any]) -> "LicenseSku":
        prepaid = sku.get("prepaidUnits") or {}
        return cls.model_validate({**sku, "enabled_units": prepaid.get("enabled", 0)})


class TemporaryAccessPassRequest(BaseModel):
    lifetime_in_minutes: int = Field(alias="lifetimeInMinutes", ge=10, le=43200)
    is_usable_once: bool = Field(alias="isUsableOnce")
    start_date_time: Optional[str] = Field(default=None, alias="startDateTime")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class OperationResult:
    """Outcome of one batch element; ``reason`` is set only on failure."""

    identifier: str
    status: str
    reason: str = ""
    details: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, identifier: str, **details: Any) -> "OperationResult":
        return cls(identifier=identifier, status=SUCCESS, details=details)

    @classmethod
    def failure(cls, identifier: str, reason: str, **details: Any) -> "OperationResult":
        return cls(identifier=identifier, status=FAILURE, reason=reason, details=details)

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCESS
