"""HTTP client for supplier booking APIs."""

from __future__ import annotations

from typing import Any

import requests
import structlog
from django.conf import settings  # type: ignore

from .exceptions import SupplierGatewayError, SupplierTimeoutError

logger = structlog.get_logger(__name__)


class SupplierGateway:
    """Thin wrapper over the supplier booking endpoints.

    Every call uses a request timeout; a timeout is a failure of the guarded
    action, never an open-ended wait.
    """

    def __init__(self, endpoints: dict[str, str] | None = None, api_key: str | None = None, timeout: int | None = None):
        self.endpoints = endpoints if endpoints is not None else getattr(settings, "SUPPLIER_ENDPOINTS", {})
        self.api_key = api_key if api_key is not None else getattr(settings, "SUPPLIER_API_KEY", "")
        self.timeout = timeout or getattr(settings, "SUPPLIER_API_TIMEOUT", 30)

    def _endpoint(self, supplier: str) -> str:
        url = self.endpoints.get(supplier)
        if not url:
            raise SupplierGatewayError(f"No endpoint configured for supplier '{supplier}'")
        return url

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def create_booking(self, supplier: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Place a booking with the supplier and return its JSON answer."""

        url = self._endpoint(supplier)
        try:
            response = requests.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout as exc:
            logger.warning("supplier.gateway.timeout", supplier=supplier, timeout=self.timeout)
            raise SupplierTimeoutError(f"{supplier} did not answer within {self.timeout}s") from exc
        except requests.exceptions.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            body = exc.response.text[:500] if exc.response is not None else ""
            logger.warning("supplier.gateway.http_error", supplier=supplier, status_code=status_code)
            raise SupplierGatewayError(f"{supplier} answered HTTP {status_code}: {body}") from exc
        except requests.exceptions.RequestException as exc:
            logger.warning("supplier.gateway.request_failed", supplier=supplier, error=str(exc))
            raise SupplierGatewayError(f"{supplier} request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise SupplierGatewayError(f"{supplier} returned a non-JSON body") from exc

        if not isinstance(data, dict):
            raise SupplierGatewayError(f"{supplier} returned an unexpected body: {data!r}"[:500])
        if data.get("success") is False or data.get("status") in {"error", "failed", "rejected"}:
            raise SupplierGatewayError(f"{supplier} rejected the booking: {data.get('error') or data.get('message') or data}")

        logger.info("supplier.gateway.booked", supplier=supplier)
        return data
