"""SettlementApiClient against an in-process httpx transport."""
import json
import re

import httpx
import pytest

from settlement_validation.api_client import SettlementApiClient
from settlement_validation.errors import AuthError

pytestmark = pytest.mark.asyncio

BASE = "http://backend.test"

STATS = {
    "totalTransactions": 3,
    "captured": 1,
    "processing": 0,
    "settled": 2,
    "failed": 0,
    "exceptionQueued": 0,
    "averageRetryCount": 0.5,
    "lockHeld": True,
    "lockHolder": "0b7c-token",
    "lastRunSource": "manual",
    "runCountTotal": 4,
    "lockSkippedTotal": 1,
}


READS = {
    "/customers": [{"id": 1, "name": "Test User", "email": "testuser1@example.com"}],
    "/merchants": [{"id": 2, "name": "Test Merchant", "bankAccount": "123456789", "settlementCycle": "DAILY"}],
    "/transactions": [{"id": 3, "amount": 1000, "status": "SETTLED", "retryCount": 0}],
    "/api/reconciliation/exceptions": [{"transactionId": 9, "status": "FAILED"}],
}


class FakeBackend:
    """Minimal form-login backend: session cookie after a good POST /login."""

    def __init__(self, users=None):
        self.users = users or {"admin": "admin123"}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path == "/login":
            form = dict(pair.split("=", 1) for pair in request.content.decode().split("&"))
            if self.users.get(form.get("username")) == form.get("password"):
                return httpx.Response(302, headers={"Location": "/", "Set-Cookie": "JSESSIONID=abc; Path=/"})
            return httpx.Response(302, headers={"Location": "/login.html?error"})
        if path in ("/", "/login.html"):
            return httpx.Response(200, text="<html></html>")

        if "JSESSIONID=abc" not in request.headers.get("cookie", ""):
            return httpx.Response(401)
        if path == "/api/auth/me":
            return httpx.Response(200, json={"username": "admin", "roles": ["ROLE_ADMIN", "ROLE_USER"]})
        if path == "/api/settlements/stats":
            return httpx.Response(200, json=STATS)
        if path == "/settlement/trigger":
            return httpx.Response(200, text="Settlement triggered")
        if path == "/customers" and request.method == "POST":
            return httpx.Response(403)
        if path == "/logs":
            return httpx.Response(500)
        if request.method == "GET" and path in READS:
            return httpx.Response(200, json=READS[path])
        if request.method == "POST" and path == "/api/reconciliation/run":
            return httpx.Response(200, json={"exceptionQueued": 1})
        match = re.fullmatch(r"/api/reconciliation/exceptions/(\d+)/(retry|resolve)", path)
        if request.method == "POST" and match:
            body = json.loads(request.content) if request.content else None
            return httpx.Response(200, json={"transactionId": int(match.group(1)), "action": match.group(2), "body": body})
        return httpx.Response(404)


def _client(backend):
    return SettlementApiClient(BASE, transport=httpx.MockTransport(backend))


async def test_login_and_identity():
    async with _client(FakeBackend()) as api:
        await api.login("admin", "admin123")
        identity = await api.me()
    assert identity["roles"] == ["ROLE_ADMIN", "ROLE_USER"]


async def test_login_failure_raises_auth_error():
    async with _client(FakeBackend()) as api:
        with pytest.raises(AuthError, match="API login as 'admin' failed"):
            await api.login("admin", "wrong")


async def test_stats_are_parsed():
    async with _client(FakeBackend()) as api:
        await api.login("admin", "admin123")
        stats = await api.stats()
    assert stats.lock_held is True
    assert stats.lock_holder == "0b7c-token"
    assert stats.status_total == 3
    assert stats.average_retry_count == 0.5
    assert stats.last_run_time is None


async def test_trigger_sends_idempotency_key():
    backend = FakeBackend()
    async with _client(backend) as api:
        await api.login("admin", "admin123")
        assert await api.trigger_settlement("key-1") == "Settlement triggered"
    trigger = [r for r in backend.requests if r.url.path == "/settlement/trigger"][-1]
    assert trigger.headers["Idempotency-Key"] == "key-1"


async def test_probe_write_returns_status_without_raising():
    backend = FakeBackend()
    async with _client(backend) as api:
        await api.login("admin", "admin123")
        status = await api.probe_write("POST", "/customers", json={"name": "x", "email": "x@example.com"})
    assert status == 403
    probe = [r for r in backend.requests if r.url.path == "/customers"][-1]
    assert json.loads(probe.content) == {"name": "x", "email": "x@example.com"}


async def test_reads_raise_on_http_errors():
    async with _client(FakeBackend()) as api:
        with pytest.raises(httpx.HTTPStatusError):
            await api.me()
        await api.login("admin", "admin123")
        with pytest.raises(httpx.HTTPStatusError):
            await api.logs()


async def test_collection_reads():
    async with _client(FakeBackend()) as api:
        await api.login("admin", "admin123")
        customers = await api.customers()
        merchants = await api.merchants()
        transactions = await api.transactions()
        queue = await api.exception_queue()
    assert customers[0]["email"] == "testuser1@example.com"
    assert merchants[0]["settlementCycle"] == "DAILY"
    assert transactions == [{"id": 3, "amount": 1000, "status": "SETTLED", "retryCount": 0}]
    assert queue[0]["transactionId"] == 9


async def test_reconciliation_actions():
    backend = FakeBackend()
    async with _client(backend) as api:
        await api.login("admin", "admin123")
        run = await api.run_reconciliation()
        retried = await api.retry_exception(9)
        resolved = await api.resolve_exception(9, note="refunded manually")
        bare = await api.resolve_exception(9)

    assert run == {"exceptionQueued": 1}
    assert retried == {"transactionId": 9, "action": "retry", "body": None}
    assert resolved == {"transactionId": 9, "action": "resolve", "body": {"note": "refunded manually"}}
    assert bare["body"] is None
    paths = [r.url.path for r in backend.requests if r.method == "POST"]
    assert "/api/reconciliation/exceptions/9/retry" in paths


async def test_reconciliation_requires_session():
    async with _client(FakeBackend()) as api:
        with pytest.raises(httpx.HTTPStatusError):
            await api.run_reconciliation()
