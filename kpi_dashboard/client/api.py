"""Async HTTP client for the dashboard REST API."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Mapping

import httpx
from opentelemetry.propagate import inject

from kpi_dashboard.config import get_settings

logger = logging.getLogger(__name__)


class DashboardClientError(RuntimeError):
    """Raised when the API answers with a failure envelope or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


def _query(params: Mapping[str, Any]) -> dict[str, Any]:
    query: dict[str, Any] = {}
    for name, value in params.items():
        if value is None or value == "":
            continue
        query[name] = value.isoformat() if isinstance(value, date) else value
    return query


class DashboardClient:
    """One coroutine per REST operation; each returns the decoded success envelope."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.dashboard_api_url).rstrip("/")
        self._timeout = timeout_seconds or settings.dashboard_api_timeout_seconds
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        headers: dict[str, str] = {}
        inject(headers)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method, url, params=_query(params or {}), json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise DashboardClientError(f"Failed to reach dashboard API: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise DashboardClientError(
                f"Dashboard API returned invalid JSON ({response.status_code})", status_code=response.status_code
            ) from exc

        if response.status_code >= 400 or not payload.get("success", False):
            message = payload.get("message") or f"Request failed with status {response.status_code}"
            logger.warning("Dashboard API error %s for %s %s: %s", response.status_code, method, path, message)
            raise DashboardClientError(message, status_code=response.status_code, payload=payload)
        return payload

    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/health")

    # KPIs ---------------------------------------------------------------

    async def get_dashboard(self, start_date: date | None = None, end_date: date | None = None) -> dict[str, Any]:
        return await self._request("GET", "/kpis/dashboard", params={"startDate": start_date, "endDate": end_date})

    async def get_date_range(self) -> dict[str, Any]:
        return await self._request("GET", "/kpis/date-range")

    async def get_latest(self) -> dict[str, Any]:
        return await self._request("GET", "/kpis/latest")

    async def get_trend(self, kpi_id: int, days: int = 30) -> dict[str, Any]:
        return await self._request("GET", f"/kpis/trend/{kpi_id}", params={"days": days})

    async def get_weekly_comparison(self) -> dict[str, Any]:
        return await self._request("GET", "/kpis/weekly-comparison")

    async def get_comparison(
        self,
        start_date1: date,
        end_date1: date,
        start_date2: date,
        end_date2: date,
        *,
        kpi_id: int | None = None,
        category_id: int | None = None,
    ) -> dict[str, Any]:
        params = {
            "startDate1": start_date1,
            "endDate1": end_date1,
            "startDate2": start_date2,
            "endDate2": end_date2,
            "kpiId": kpi_id,
            "categoryId": category_id,
        }
        return await self._request("GET", "/kpis/comparison", params=params)

    async def list_categories(self) -> dict[str, Any]:
        return await self._request("GET", "/kpis/categories")

    async def create_category(self, name: str, display_order: int | None = None) -> dict[str, Any]:
        return await self._request("POST", "/kpis/categories", json={"name": name, "display_order": display_order})

    async def update_category(self, category_id: int, name: str, display_order: int | None = None) -> dict[str, Any]:
        return await self._request(
            "PUT", f"/kpis/categories/{category_id}", json={"name": name, "display_order": display_order}
        )

    async def delete_category(self, category_id: int) -> dict[str, Any]:
        return await self._request("DELETE", f"/kpis/categories/{category_id}")

    async def list_kpis(self) -> dict[str, Any]:
        return await self._request("GET", "/kpis")

    async def create_kpi(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/kpis", json=dict(payload))

    async def update_kpi(self, kpi_id: int, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("PUT", f"/kpis/{kpi_id}", json=dict(payload))

    async def delete_kpi(self, kpi_id: int) -> dict[str, Any]:
        return await self._request("DELETE", f"/kpis/{kpi_id}")

    async def list_kpi_data(
        self,
        *,
        search: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        kpi_id: int | None = None,
        category_id: int | None = None,
        limit: int = 20,
        page: int = 1,
    ) -> dict[str, Any]:
        params = {
            "search": search,
            "startDate": start_date,
            "endDate": end_date,
            "kpiId": kpi_id,
            "categoryId": category_id,
            "limit": limit,
            "page": page,
        }
        return await self._request("GET", "/kpis/data", params=params)

    async def get_kpi_data(self, value_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/kpis/data/{value_id}")

    async def update_kpi_data(self, value_id: int, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("PUT", f"/kpis/data/{value_id}", json=dict(payload))

    async def delete_kpi_data(self, value_id: int) -> dict[str, Any]:
        return await self._request("DELETE", f"/kpis/data/{value_id}")

    async def create_value(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/kpis/values", json=dict(payload))

    async def update_value(self, value_id: int, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("PUT", f"/kpis/values/{value_id}", json=dict(payload))

    async def delete_value(self, value_id: int) -> dict[str, Any]:
        return await self._request("DELETE", f"/kpis/values/{value_id}")

    async def bulk_import(self, kpi_id: int, rows: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
        return await self._request(
            "POST", "/kpis/values/bulk", json={"kpi_id": kpi_id, "values": [dict(row) for row in rows]}
        )

    # Transactions -------------------------------------------------------

    async def list_transactions(self, *, page: int = 1, limit: int = 20, **filters: Any) -> dict[str, Any]:
        return await self._request("GET", "/transactions", params={"page": page, "limit": limit, **filters})

    async def transaction_stats(self, **filters: Any) -> dict[str, Any]:
        return await self._request("GET", "/transactions/stats", params=filters)

    async def get_transaction(self, transaction_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/transactions/{transaction_id}")

    async def update_transaction(self, transaction_id: int, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("PUT", f"/transactions/{transaction_id}", json=dict(payload))

    async def delete_transaction(self, transaction_id: int) -> dict[str, Any]:
        return await self._request("DELETE", f"/transactions/{transaction_id}")

    # Activities ---------------------------------------------------------

    async def list_activities(self, *, page: int = 1, limit: int = 20, **filters: Any) -> dict[str, Any]:
        return await self._request("GET", "/activities", params={"page": page, "limit": limit, **filters})

    async def activity_stats(self, **filters: Any) -> dict[str, Any]:
        return await self._request("GET", "/activities/stats", params=filters)

    async def activity_types(self) -> dict[str, Any]:
        return await self._request("GET", "/activities/types")

    async def activity_categories(self) -> dict[str, Any]:
        return await self._request("GET", "/activities/categories")

    async def activity_date_range(self) -> dict[str, Any]:
        return await self._request("GET", "/activities/date-range")

    # WhatsApp -----------------------------------------------------------

    async def whatsapp_initialize(self) -> dict[str, Any]:
        return await self._request("POST", "/whatsapp/initialize")

    async def whatsapp_status(self) -> dict[str, Any]:
        return await self._request("GET", "/whatsapp/status")

    async def send_bulk(self, message: str, phone_numbers: Iterable[str]) -> dict[str, Any]:
        return await self._request(
            "POST", "/whatsapp/send-bulk", json={"message": message, "phoneNumbers": list(phone_numbers)}
        )

    async def cancel_bulk(self) -> dict[str, Any]:
        return await self._request("POST", "/whatsapp/cancel")

    async def whatsapp_disconnect(self) -> dict[str, Any]:
        return await self._request("POST", "/whatsapp/disconnect")


__all__ = ["DashboardClient", "DashboardClientError"]
