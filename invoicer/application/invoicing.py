"""Application service for single invoices and organization settings."""
from __future__ import annotations

import logging
from typing import Any

from invoicer.core.errors import ConfigurationError
from invoicer.core.schema import Profile, SingleInvoiceRequest
from invoicer.core.templates import default_line_item, line_item_payload
from invoicer.infrastructure import InventoryApiError, InventoryClient, ProfileRepository, parse_error

logger = logging.getLogger("invoicer.invoicing")

MONTHS = [
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
]

ADDRESS_FIELDS = ("street_address1", "street_address2", "city", "state", "country", "zip")


def _fiscal_month_name(value: Any) -> Any:
    if isinstance(value, int) and 0 <= value < len(MONTHS):
        return MONTHS[value]
    return value


def build_organization_update(organization: dict[str, Any], display_name: str) -> dict[str, Any]:
    """Rebuild the full update body the API requires from the current record."""

    address = organization.get("address") or {}
    return {
        "name": organization.get("name"),
        "contact_name": display_name,
        "email": organization.get("email"),
        "is_logo_uploaded": organization.get("is_logo_uploaded"),
        "fiscal_year_start_month": _fiscal_month_name(organization.get("fiscal_year_start_month")),
        "time_zone": organization.get("time_zone"),
        "language_code": organization.get("language_code"),
        "date_format": organization.get("date_format"),
        "field_separator": organization.get("field_separator"),
        "org_address": organization.get("org_address"),
        "remit_to_address": organization.get("remit_to_address"),
        "phone": organization.get("phone"),
        "fax": organization.get("fax"),
        "website": organization.get("website"),
        "currency_id": organization.get("currency_id"),
        "companyid_label": organization.get("company_id_label"),
        "companyid_value": organization.get("company_id_value"),
        "taxid_label": organization.get("tax_id_label"),
        "taxid_value": organization.get("tax_id_value"),
        "address": {key: address.get(key) or "" for key in ADDRESS_FIELDS},
        "custom_fields": organization.get("custom_fields") or [],
    }


class InvoicingService:
    """Coordinates the request/response use cases around the inventory API."""

    def __init__(self, client: InventoryClient, profiles: ProfileRepository) -> None:
        self._client = client
        self._profiles = profiles

    # ------------------------------------------------------------------
    # profiles
    # ------------------------------------------------------------------
    def list_profiles(self) -> list[dict[str, Any]]:
        return [profile.public_view() for profile in self._profiles.load_named_profiles()]

    def find_profile(self, profile_name: str) -> Profile | None:
        return self._profiles.find(profile_name)

    def resolve_profile(self, profile_name: str) -> Profile:
        profile = self._profiles.find(profile_name)
        if profile is None or profile.inventory is None or not profile.inventory.org_id:
            raise ConfigurationError("Inventory profile not configured.")
        return profile

    # ------------------------------------------------------------------
    # single invoice
    # ------------------------------------------------------------------
    async def send_single_invoice(self, request: SingleInvoiceRequest) -> dict[str, Any]:
        if not (request.email and request.subject and request.body and request.selected_profile_name):
            return {"success": False, "error": "Missing required fields."}
        try:
            profile = self.resolve_profile(request.selected_profile_name)
        except ConfigurationError as exc:
            return {"success": False, "error": str(exc)}

        email = request.email.strip()
        full_response: dict[str, Any] = {}
        try:
            search = await self._client.find_contacts_by_email(profile, email)
            contacts = search.get("contacts") or []
            if contacts:
                contact_id = contacts[0]["contact_id"]
                full_response["contact"] = {"status": "found", "data": search}
            else:
                payload = {
                    "contact_name": email.split("@")[0],
                    "contact_persons": [{"email": email, "is_primary_contact": True}],
                }
                created = await self._client.create_contact(profile, payload)
                contact_id = created["contact"]["contact_id"]
                full_response["contact"] = {"status": "created", "data": created}

            details = await self._client.get_contact(profile, contact_id)
            persons = (details.get("contact") or {}).get("contact_persons") or []
            person_ids = [p["contact_person_id"] for p in persons if isinstance(p, dict) and p.get("contact_person_id")]
            if not person_ids:
                raise InventoryApiError("Could not find a contact person for the contact.", full_response=details)

            invoice_payload = {
                "customer_id": contact_id,
                "contact_person_ids": person_ids,
                "line_items": [line_item_payload(default_line_item("single"))],
            }
            invoice_data = await self._client.create_invoice(profile, invoice_payload)
            invoice = invoice_data["invoice"]
            full_response["invoice"] = invoice_data

            email_payload = {
                "subject": request.subject,
                "body": request.body,
                "send_from_org_email_id": False,
                "to_mail_ids": [email],
            }
            full_response["email"] = await self._client.email_contact(profile, contact_id, email_payload)
        except (InventoryApiError, KeyError, TypeError) as exc:
            logger.warning("single_invoice_failed profile=%s error=%r", profile.profile_name, exc)
            message, error_response = parse_error(exc)
            full_response["error"] = error_response
            return {"success": False, "error": message, "full_response": full_response}

        return {
            "success": True,
            "message": f"Invoice {invoice.get('invoice_number')} created and email sent successfully.",
            "full_response": full_response,
        }

    # ------------------------------------------------------------------
    # organization
    # ------------------------------------------------------------------
    async def get_organization(self, profile_name: str) -> dict[str, Any]:
        try:
            profile = self.resolve_profile(profile_name)
            data = await self._client.get_organization(profile)
        except (ConfigurationError, InventoryApiError) as exc:
            message, _ = parse_error(exc)
            return {"success": False, "error": message}
        organization = data.get("organization")
        if not organization:
            return {"success": False, "error": "Organization not found for this profile."}
        return {"success": True, "data": organization}

    async def update_display_name(self, profile_name: str, display_name: str) -> dict[str, Any]:
        try:
            profile = self.resolve_profile(profile_name)
            current = await self._client.get_organization(profile)
            organization = current.get("organization")
            if not organization:
                raise InventoryApiError("Could not find the organization to update.", full_response=current)
            response = await self._client.update_organization(
                profile, build_organization_update(organization, display_name)
            )
        except (ConfigurationError, InventoryApiError) as exc:
            message, full_response = parse_error(exc)
            return {"success": False, "error": message, "full_response": full_response}

        updated = response.get("organization")
        if not updated:
            return {
                "success": False,
                "error": "Invalid response structure from the inventory API after update.",
                "full_response": response,
            }
        if updated.get("contact_name") != display_name:
            return {
                "success": False,
                "error": "API reported success, but the name was not updated. This may be a permissions issue.",
                "full_response": response,
            }
        return {"success": True, "data": updated}

    async def check_api_status(self, profile_name: str) -> dict[str, Any]:
        try:
            profile = self.resolve_profile(profile_name)
            data = await self._client.get_organization(profile)
        except (ConfigurationError, InventoryApiError) as exc:
            message, full_response = parse_error(exc)
            return {"success": False, "message": message, "full_response": full_response}
        name = (data.get("organization") or {}).get("name") or profile.inventory.org_id
        return {"success": True, "message": f"Connected to {name}.", "full_response": data}
