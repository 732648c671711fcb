"""
Async HTTP client for the SimpleStock API.

Bulk actions (zeroing or deleting a whole page of products) are a fan-out of
independent requests: each item succeeds or fails on its own and the caller
gets the aggregate counts back. Nothing is retried.
"""
import os
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

STOCK_API_URL = os.getenv("STOCK_API_URL", "http://localhost:8000")
REQUEST_TIMEOUT = 8.0


class StockAPIError(Exception):
    """Non-2xx answer from the API"""

    def __init__(self, status_code: int, detail: Any):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail}")


@dataclass
class BulkResult:
    succeeded: List[int] = field(default_factory=list)
    failed: Dict[int, Exception] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


class StockClient:
    def __init__(self, base_url: str = STOCK_API_URL, timeout: float = REQUEST_TIMEOUT, transport=None):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs):
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            raise StockAPIError(response.status_code, detail)
        if response.status_code == 204:
            return None
        return response.json()

    async def health(self) -> Dict[str, Any]:
        return await self._request("GET", "/health")

    async def list_products(
        self,
        search: str = "",
        statuses: Optional[List[str]] = None,
        sort_by: str = "name",
        sort_dir: str = "asc",
        page: int = 1,
        page_size: int = 10,
    ) -> Dict[str, Any]:
        params = {"sort_by": sort_by, "sort_dir": sort_dir, "page": page, "page_size": page_size}
        if search.strip():
            params["search"] = search.strip()
        if statuses:
            params["status"] = list(statuses)
        return await self._request("GET", "/api/products", params=params)

    async def get_product(self, product_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/api/products/{product_id}")

    async def create_product(self, **data) -> Dict[str, Any]:
        return await self._request("POST", "/api/products", json=data)

    async def update_product(self, product_id: int, **data) -> Dict[str, Any]:
        return await self._request("PUT", f"/api/products/{product_id}", json=data)

    async def delete_product(self, product_id: int) -> None:
        await self._request("DELETE", f"/api/products/{product_id}")

    async def list_movements(self, product_id: int, **filters) -> Dict[str, Any]:
        params = {key: value for key, value in filters.items() if value not in (None, "")}
        return await self._request("GET", f"/api/products/{product_id}/movements", params=params)

    async def create_movement(
        self,
        product_id: int,
        movement_type: str,
        quantity: int,
        date: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {"type": movement_type, "quantity": quantity}
        if date:
            payload["date"] = date
        if note:
            payload["note"] = note
        return await self._request("POST", f"/api/products/{product_id}/movements", json=payload)

    async def zero_out(self, product_id: int) -> Dict[str, Any]:
        return await self._request("POST", f"/api/products/{product_id}/zero-out")

    async def quick_out(self, product_id: int, quantity: int, note: Optional[str] = None) -> Dict[str, Any]:
        payload = {"product_id": product_id, "quantity": quantity}
        if note:
            payload["note"] = note
        return await self._request("POST", "/api/quick-out", json=payload)

    async def quick_out_history(self, **filters) -> Dict[str, Any]:
        params = {key: value for key, value in filters.items() if value not in (None, "")}
        return await self._request("GET", "/api/quick-out/history", params=params)

    async def _fan_out(self, action, product_ids, label: str) -> BulkResult:
        ids = list(product_ids)
        outcomes = await asyncio.gather(*(action(pid) for pid in ids), return_exceptions=True)
        result = BulkResult()
        for pid, outcome in zip(ids, outcomes):
            if isinstance(outcome, Exception):
                result.failed[pid] = outcome
            else:
                result.succeeded.append(pid)
        if result.failed:
            logger.error(f"Failed to {label} {len(result.failed)} of {result.total} products")
        else:
            logger.info(f"{label} completed for {result.total} products")
        return result

    async def zero_out_many(self, product_ids) -> BulkResult:
        return await self._fan_out(self.zero_out, product_ids, "zero out")

    async def delete_many(self, product_ids) -> BulkResult:
        return await self._fan_out(self.delete_product, product_ids, "delete")
