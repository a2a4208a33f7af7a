from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

DEFAULT_CREDENTIAL_FILE = "credentials.json"


class CredentialFileNotFoundError(FileNotFoundError):
    """Raised when the credential file is missing."""


class Credential(BaseModel):
    """App registration identity used for the client-credential flow.

    The secret is kept as a ``SecretStr`` so it never shows up in reprs or logs.
    """

    tenant_id: str = Field(alias="tenantId")
    client_id: str = Field(alias="clientId")
    client_secret: SecretStr = Field(alias="clientSecret")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("tenant_id", "client_id")
    @classmethod
    def require_value(cls, value: str) -> str:
        if not value:
            raise ValueError("value must not be empty")
        return value

    @field_validator("client_secret")
    @classmethod
    def require_secret(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("clientSecret must not be empty")
        return value


def load_credential(path: Union[str, Path] = DEFAULT_CREDENTIAL_FILE) -> Credential:
    credential_path = Path(path)
    if not credential_path.exists():
        raise CredentialFileNotFoundError(f"Credential file {credential_path} does not exist.")

    with credential_path.open("r", encoding="utf-8-sig") as handle:
        raw = json.load(handle)

    return Credential.model_validate(raw)


class AccessPassDefaults(BaseModel):
    lifetime_in_minutes: int = Field(default=60, ge=10, le=43200)
    is_usable_once: bool = False

    model_config = ConfigDict(extra="forbid")


class ReportSettings(BaseModel):
    """Per-command CSV conventions.

    ``bom`` maps a command name to whether its report starts with a UTF-8
    byte-order mark. Commands not listed fall back to ``default_bom``.
    """

    default_bom: bool = False
    bom: Dict[str, bool] = Field(
        default_factory=lambda: {
            "export-users": True,
            "create-users": False,
            "delete-users": False,
            "purge-deleted-users": False,
            "assign-licenses": False,
            "issue-access-passes": True,
            "list-user-licenses": True,
            "list-skus": True,
        }
    )

    model_config = ConfigDict(extra="forbid")

    def bom_for(self, command: str) -> bool:
        return self.bom.get(command, self.default_bom)


class ToolkitSettings(BaseModel):
    authority_host: str = Field(
        default="https://login.microsoftonline.com",
        description="AAD authority host",
    )
    graph_base_url: str = Field(
        default="https://graph.microsoft.com/v1.0",
        description="Graph endpoint. Override for national clouds if needed.",
    )
    scopes: List[str] = Field(
        default_factory=lambda: ["https://graph.microsoft.com/.default"]
    )
    timeout: float = Field(default=30.0, gt=0)
    page_size: int = Field(default=999, ge=1, le=999)
    access_pass: AccessPassDefaults = Field(default_factory=AccessPassDefaults)
    reports: ReportSettings = Field(default_factory=ReportSettings)

    model_config = ConfigDict(extra="forbid")

    @field_validator("scopes")
    @classmethod
    def ensure_scopes(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("At least one scope must be provided")
        return value

    @field_validator("graph_base_url", "authority_host")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "ToolkitSettings":
        if path is None:
            return cls()

        settings_path = Path(path)
        if not settings_path.exists():
            raise FileNotFoundError(f"Settings file not found: {settings_path}")

        with settings_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}

        return cls(**raw)
