"""Direct REST access to the settlement backend.

Used next to the browser session to cross-check what the dashboard renders
and to probe write endpoints as a given role. Authentication goes through the
same form login the dashboard uses; the session cookie is kept on the client.

Usage:
    async with SettlementApiClient("http://localhost:8080") as api:
        await api.login("admin", "admin123")
        stats = await api.stats()
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from settlement_validation.errors import AuthError
from settlement_validation.models import StatsSnapshot
from settlement_validation.session import on_login_route

logger = logging.getLogger(__name__)


class SettlementApiClient:
    """Async httpx client for the settlement REST surface."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "SettlementApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ---- auth --------------------------------------------------------------------
    async def login(self, username: str, password: str) -> None:
        """Submit the login form; success means the redirect left the login route."""
        response = await self._client.post(
            "/login",
            data={"username": username, "password": password},
        )
        if response.status_code >= 400 or on_login_route(str(response.url)):
            raise AuthError(f"API login as '{username}' failed (status={response.status_code}, url={response.url})")
        logger.debug("API session established for %s", username)

    async def me(self) -> Dict[str, Any]:
        return await self._get_json("/api/auth/me")

    # ---- reads -------------------------------------------------------------------
    async def stats(self) -> StatsSnapshot:
        return StatsSnapshot.from_json(await self._get_json("/api/settlements/stats"))

    async def customers(self) -> List[Dict[str, Any]]:
        return await self._get_json("/customers")

    async def merchants(self) -> List[Dict[str, Any]]:
        return await self._get_json("/merchants")

    async def transactions(self) -> List[Dict[str, Any]]:
        return await self._get_json("/transactions")

    async def logs(self) -> List[Dict[str, Any]]:
        return await self._get_json("/logs")

    async def exception_queue(self) -> List[Dict[str, Any]]:
        return await self._get_json("/api/reconciliation/exceptions")

    # ---- writes ------------------------------------------------------------------
    async def trigger_settlement(self, idempotency_key: Optional[str] = None) -> str:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        response = await self._client.post("/settlement/trigger", headers=headers)
        response.raise_for_status()
        return response.text

    async def run_reconciliation(self) -> Dict[str, Any]:
        return await self._post_json("/api/reconciliation/run")

    async def retry_exception(self, transaction_id: int) -> Dict[str, Any]:
        return await self._post_json(f"/api/reconciliation/exceptions/{transaction_id}/retry")

    async def resolve_exception(self, transaction_id: int, note: Optional[str] = None) -> Dict[str, Any]:
        body = {"note": note} if note is not None else None
        return await self._post_json(f"/api/reconciliation/exceptions/{transaction_id}/resolve", body)

    async def probe_write(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> int:
        """Issue a request and return its status without raising."""
        response = await self._client.request(method, path, json=json)
        logger.debug("Probe %s %s -> %s", method, path, response.status_code)
        return response.status_code

    # ---- plumbing ----------------------------------------------------------------
    async def _get_json(self, path: str) -> Any:
        response = await self._client.get(path, headers={"Accept": "application/json"})
        response.raise_for_status()
        return response.json()

    async def _post_json(self, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._client.post(path, json=body)
        response.raise_for_status()
        return response.json()
