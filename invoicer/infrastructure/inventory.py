"""Integration with the inventory accounting HTTP API."""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

import httpx

from invoicer.core.schema import InventorySettings, Profile

logger = logging.getLogger("invoicer.inventory")


class InventoryApiError(RuntimeError):
    """Raised when a call to the inventory service fails.

    ``full_response`` holds the raw response body (decoded JSON where
    possible) so callers can forward it for diagnosis.
    """

    def __init__(self, message: str, *, full_response: Any = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.full_response = full_response
        self.status_code = status_code

    @classmethod
    def from_response(cls, response: httpx.Response) -> "InventoryApiError":
        data = _decode_body(response)
        message: str | None = None
        if isinstance(data, dict):
            message = data.get("message") or data.get("error")
        if not message:
            message = f"HTTP {response.status_code} {response.reason_phrase}".strip()
        return cls(str(message), full_response=data, status_code=response.status_code)


def parse_error(error: BaseException) -> tuple[str, Any]:
    """Split an exception into a short message and its raw payload."""

    if isinstance(error, InventoryApiError):
        return error.message, error.full_response
    message = str(error) or error.__class__.__name__
    return message, None


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class InventoryClient:
    """Async client for the inventory API.

    Every request is scoped to the profile's organization.  Access tokens are
    obtained with the OAuth refresh-token grant, cached per profile and
    refreshed once when the API answers 401.
    """

    def __init__(
        self,
        *,
        api_base: str = "https://www.zohoapis.com/inventory",
        accounts_url: str = "https://accounts.zoho.com",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        for value in (api_base, accounts_url):
            parsed = urlparse(value)
            if not parsed.scheme or not parsed.netloc:
                raise ValueError("api_base and accounts_url must include scheme and host")

        self._api_base = api_base.rstrip("/")
        self._accounts_url = accounts_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        self._tokens: dict[str, str] = {}

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _require_inventory(profile: Profile) -> InventorySettings:
        if profile.inventory is None:
            raise InventoryApiError(f"Profile '{profile.profile_name}' has no inventory configuration.")
        return profile.inventory

    @staticmethod
    def _token_key(profile: Profile) -> str:
        settings = profile.inventory
        org_id = settings.org_id if settings else ""
        return f"{profile.profile_name}:{org_id}"

    @staticmethod
    def _can_refresh(settings: InventorySettings) -> bool:
        return bool(settings.client_id and settings.client_secret and settings.refresh_token)

    async def _refresh_access_token(self, profile: Profile) -> str:
        settings = self._require_inventory(profile)
        if not self._can_refresh(settings):
            raise InventoryApiError("Inventory credentials are incomplete; cannot refresh the access token.")

        params = {
            "refresh_token": settings.refresh_token,
            "client_id": settings.client_id,
            "client_secret": settings.client_secret,
            "grant_type": "refresh_token",
        }
        try:
            response = await self._client.post(f"{self._accounts_url}/oauth/v2/token", params=params)
        except httpx.HTTPError as exc:
            raise InventoryApiError(f"Token refresh failed: {exc}") from exc

        data = _decode_body(response)
        if response.is_error or not isinstance(data, dict) or not data.get("access_token"):
            error = InventoryApiError.from_response(response)
            raise InventoryApiError(
                f"Token refresh failed: {error.message}",
                full_response=data,
                status_code=response.status_code,
            )

        token = str(data["access_token"])
        self._tokens[self._token_key(profile)] = token
        logger.info("token_refreshed profile=%s", profile.profile_name)
        return token

    async def _access_token(self, profile: Profile) -> str:
        cached = self._tokens.get(self._token_key(profile))
        if cached:
            return cached
        settings = self._require_inventory(profile)
        if settings.access_token and not self._can_refresh(settings):
            return settings.access_token
        return await self._refresh_access_token(profile)

    async def _send(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None,
        params: dict[str, Any],
        token: str,
    ) -> httpx.Response:
        url = f"{self._api_base}/{path.lstrip('/')}"
        headers = {"Authorization": f"Zoho-oauthtoken {token}"}
        try:
            return await self._client.request(method.upper(), url, params=params, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise InventoryApiError(f"Request to {path} failed: {exc}") from exc

    @staticmethod
    def _handle(response: httpx.Response) -> dict[str, Any]:
        if response.is_error:
            raise InventoryApiError.from_response(response)
        data = _decode_body(response)
        if not isinstance(data, dict):
            raise InventoryApiError("Unexpected response from the inventory API.", full_response=data)
        code = data.get("code")
        if code not in (None, 0, "0"):
            raise InventoryApiError(
                str(data.get("message") or f"error code {code}"),
                full_response=data,
                status_code=response.status_code,
            )
        return data

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        *,
        profile: Profile,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        settings = self._require_inventory(profile)
        query: dict[str, Any] = {"organization_id": settings.org_id}
        if params:
            query.update(params)

        token = await self._access_token(profile)
        response = await self._send(method, path, body, query, token)
        if response.status_code == 401 and self._can_refresh(settings):
            logger.info("token_expired profile=%s path=%s", profile.profile_name, path)
            self._tokens.pop(self._token_key(profile), None)
            token = await self._refresh_access_token(profile)
            response = await self._send(method, path, body, query, token)

        logger.debug("inventory_call method=%s path=%s status=%s", method.upper(), path, response.status_code)
        return self._handle(response)

    async def find_contacts_by_email(self, profile: Profile, email: str) -> dict[str, Any]:
        return await self.request("get", "/v1/contacts", profile=profile, params={"email": email})

    async def create_contact(self, profile: Profile, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.request("post", "/v1/contacts", payload, profile=profile)

    async def get_contact(self, profile: Profile, contact_id: str) -> dict[str, Any]:
        return await self.request("get", f"/v1/contacts/{contact_id}", profile=profile)

    async def create_invoice(self, profile: Profile, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.request("post", "/v1/invoices", payload, profile=profile)

    async def email_contact(self, profile: Profile, contact_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.request("post", f"/v1/contacts/{contact_id}/email", payload, profile=profile)

    async def get_organization(self, profile: Profile) -> dict[str, Any]:
        settings = self._require_inventory(profile)
        return await self.request("get", f"/v1/organizations/{settings.org_id}", profile=profile)

    async def update_organization(self, profile: Profile, payload: dict[str, Any]) -> dict[str, Any]:
        settings = self._require_inventory(profile)
        return await self.request("put", f"/v1/organizations/{settings.org_id}", payload, profile=profile)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["InventoryApiError", "InventoryClient", "parse_error"]
