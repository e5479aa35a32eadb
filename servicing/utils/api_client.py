import logging
from typing import Any, Optional

import httpx

from servicing.utils.normalizer import DataNormalizer

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """SmartLend API call failed (transport error or non-2xx response)."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SmartLendClient:
    """
    Async client for the SmartLend API.

    Every response is normalized before it is returned, so callers only ever
    see the canonical schema. One instance per request: the bearer token of
    the calling session is bound at construction.
    """

    def __init__(self, base_url: str, token: Optional[str] = None,
                 timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip('/'),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"SmartLend {method} {path} failed: {e}")
            raise UpstreamError(f"SmartLend API unavailable: {e}")

        if resp.status_code >= 400:
            message = None
            try:
                body = resp.json()
                if isinstance(body, dict):
                    message = body.get("message") or body.get("error") or body.get("detail")
            except ValueError:
                pass
            message = message or resp.text or f"SmartLend API returned {resp.status_code}"
            logger.warning(f"SmartLend {method} {path} -> {resp.status_code}: {message}")
            raise UpstreamError(message, status_code=resp.status_code)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            raise UpstreamError(f"SmartLend {method} {path} returned invalid JSON")

    # ===== Customer =====

    async def list_customer_loans(self) -> list:
        data = await self._request("GET", "/customer/loans")
        return [DataNormalizer.normalize_loan_row(row) for row in data or [] if isinstance(row, dict)]

    async def get_loan_with_emis(self, loan_id: int) -> dict:
        data = await self._request("GET", f"/customer/loans/emi/{loan_id}")
        pack = DataNormalizer.normalize_pack(data if isinstance(data, dict) else {})
        if pack.get('id') is None:
            pack['id'] = loan_id
        return pack

    async def pay_emi(self, emi_id: int) -> dict:
        data = await self._request("POST", f"/customer/loans/emi/pay/{emi_id}", json={})
        logger.info(f"EMI {emi_id} paid")
        return DataNormalizer.normalize_emi_row(data if isinstance(data, dict) else {})

    # ===== Admin =====

    async def list_loan_types(self) -> list:
        data = await self._request("GET", "/admin/loan-types")
        return [DataNormalizer.normalize_loan_type_row(row) for row in data or [] if isinstance(row, dict)]

    async def update_loan_type(self, loan_type_id: int, payload: dict) -> dict:
        data = await self._request("PUT", f"/admin/loan-types/{loan_type_id}", json=payload)
        return DataNormalizer.normalize_loan_type_row(data if isinstance(data, dict) else {})

    async def list_admin_loans(self) -> list:
        data = await self._request("GET", "/admin/loans")
        return [DataNormalizer.normalize_loan_row(row) for row in data or [] if isinstance(row, dict)]

    async def get_admin_loan(self, loan_id: int) -> dict:
        data = await self._request("GET", f"/admin/loans/{loan_id}")
        return DataNormalizer.normalize_loan_row(data if isinstance(data, dict) else {})

    async def update_loan_status(self, loan_id: int, status: str, comment: str) -> dict:
        data = await self._request(
            "PUT", f"/admin/loans/{loan_id}", json={"status": status, "comments": comment}
        )
        logger.info(f"Loan {loan_id} moved to {status}")
        return DataNormalizer.normalize_loan_row(data if isinstance(data, dict) else {})

    async def delete_admin_loan(self, loan_id: int) -> None:
        await self._request("DELETE", f"/admin/loans/{loan_id}")
        logger.info(f"Loan {loan_id} deleted")
