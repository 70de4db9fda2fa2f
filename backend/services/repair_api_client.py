"""
Thin async client for the marketplace's boat repair API

Every call sends the customer's bearer token, non-2xx responses become a
RepairApiError carrying the server's message. No retries, no caching.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from config import config
from domain.errors import RepairApiError

logger = logging.getLogger(__name__)


class RepairApiClient:
    def __init__(
        self,
        token: str,
        base_url: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.token = token
        self.base_url = (base_url or config.repair_api.url).rstrip("/")
        self.timeout = timeout or config.repair_api.timeout
        self._transport = transport

        if not token:
            logger.warning("RepairApiClient created without a token - requests will be rejected")

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.token}",
        }

    async def _send(
        self, method: str, path: str, default_error: str, json: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        url = f"{self.base_url}/api/boat-repairs{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, json=json, headers=self._headers())
        except httpx.TimeoutException as e:
            logger.error(f"{method} {path} timed out")
            raise RepairApiError(f"{default_error}: request timed out", status_code=504) from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise RepairApiError(f"{default_error}: {e}", status_code=502) from e

        if response.is_error:
            try:
                message = response.json().get("message") or default_error
            except (ValueError, AttributeError):
                message = default_error
            logger.error(f"{method} {path} -> {response.status_code}: {message}")
            raise RepairApiError(message, status_code=response.status_code)

        return response

    async def _request(
        self, method: str, path: str, default_error: str, json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        response = await self._send(method, path, default_error, json=json)
        try:
            return response.json()
        except ValueError as e:
            raise RepairApiError(f"{default_error}: invalid response from server") from e

    async def create(self, repair_data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new repair request, response carries bookingId"""
        return await self._request("POST", "", "Failed to create repair request", json=repair_data)

    async def get_by_id(self, repair_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/{repair_id}", "Failed to fetch repair request")

    async def get_by_booking_id(self, booking_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/booking/{booking_id}", "Failed to fetch repair request")

    async def list_mine(self) -> Dict[str, Any]:
        return await self._request("GET", "/my-repairs", "Failed to fetch repair requests")

    async def update_by_customer(self, repair_id: str, repair_data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "PUT", f"/{repair_id}/customer-edit", "Failed to update repair request", json=repair_data
        )

    async def cancel_by_customer(self, repair_id: str) -> Dict[str, Any]:
        return await self._request("PATCH", f"/{repair_id}/cancel", "Failed to cancel repair request")

    async def delete_by_customer(self, repair_id: str) -> Dict[str, Any]:
        # callers go through repair_policies.guarded_delete, not this directly
        return await self._request("DELETE", f"/{repair_id}/customer-delete", "Failed to delete repair request")

    async def generate_pdf(self, repair_id: str) -> bytes:
        """Booking confirmation PDF"""
        response = await self._send("GET", f"/{repair_id}/pdf", "Failed to generate PDF")
        return response.content
