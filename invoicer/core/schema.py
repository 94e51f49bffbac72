from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InventorySettings(BaseModel):
    """Credentials and organization binding for the inventory service."""

    model_config = ConfigDict(populate_by_name=True)

    org_id: str = Field(alias="orgId")
    client_id: str | None = Field(default=None, alias="clientId")
    client_secret: str | None = Field(default=None, alias="clientSecret")
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    access_token: str | None = Field(default=None, alias="accessToken")


class Profile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    profile_name: str = Field(alias="profileName")
    inventory: InventorySettings | None = None

    def public_view(self) -> dict:
        data: dict = {"profile_name": self.profile_name, "inventory": None}
        if self.inventory is not None:
            data["inventory"] = {"org_id": self.inventory.org_id}
        return data


class LineItem(BaseModel):
    name: str
    description: str | None = None
    rate: float = Field(default=0.0, ge=0)
    quantity: float = Field(default=1, gt=0)


class BulkInvoiceRequest(BaseModel):
    emails: list[str]
    subject: str
    body: str
    delay: float = Field(default=0, ge=0, description="Seconds between items")
    selected_profile_name: str
    line_item: LineItem | None = None

    @field_validator("emails")
    @classmethod
    def _strip_emails(cls, value: list[str]) -> list[str]:
        return [email.strip() for email in value if email and email.strip()]


class SingleInvoiceRequest(BaseModel):
    email: str = ""
    subject: str = ""
    body: str = ""
    selected_profile_name: str = ""


class JobControlRequest(BaseModel):
    action: Literal["pause", "resume", "end"]


class SocketJobReference(BaseModel):
    selected_profile_name: str
    job_type: Literal["invoice"] = "invoice"


class OrganizationUpdateRequest(BaseModel):
    display_name: str = Field(min_length=1)
