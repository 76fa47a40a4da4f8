"""
tests/conftest.py

Shared pytest fixtures used by both unit and integration test suites.
All HTTP fixtures use respx.mock — no real network calls are made in any test,
and DNS state for service-level tests lives in an in-memory provider.
"""

from __future__ import annotations

import itertools
import os

import httpx
import pytest
import respx

from exceptions import DnsProviderError
from providers.dns_provider import DnsRecord, normalize_name

# ---------------------------------------------------------------------------
# Keep APP_* variables from the developer's shell out of config tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clean_app_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("APP_"):
            monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# HTTP mock fixture — intercepts all httpx calls
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_http():
    """
    Yields a respx router that intercepts all httpx.AsyncClient calls.

    No real network traffic is allowed during tests. Use this fixture
    wherever a provider client would normally make an outbound request.
    """
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture()
async def http_client():
    """
    Yields a real httpx.AsyncClient instance for use in tests.

    Pair with the mock_http fixture so all requests are intercepted by respx.
    The client is closed after each test.
    """
    async with httpx.AsyncClient() as client:
        yield client


# ---------------------------------------------------------------------------
# In-memory DNS provider
# ---------------------------------------------------------------------------


class InMemoryDnsProvider:
    """
    DNSProvider double holding records per zone and recording every call.

    Set fail_on to "get", "set" or "delete" to make that operation raise
    DnsProviderError.
    """

    def __init__(self, records: dict[str, list[DnsRecord]] | None = None) -> None:
        self._ids = itertools.count(1)
        self.zones: dict[str, list[DnsRecord]] = {}
        for zone, zone_records in (records or {}).items():
            self.zones[zone] = [self._with_id(r) for r in zone_records]
        self.calls: list[tuple[str, str, list[DnsRecord]]] = []
        self.fail_on: set[str] = set()

    def _with_id(self, record: DnsRecord) -> DnsRecord:
        if record.id:
            return record
        return DnsRecord(
            name=normalize_name(record.name),
            type=record.type,
            value=record.value,
            ttl=record.ttl,
            id=f"rec-{next(self._ids)}",
        )

    def calls_to(self, operation: str) -> list[list[DnsRecord]]:
        return [records for op, _, records in self.calls if op == operation]

    async def get_records(self, zone: str) -> list[DnsRecord]:
        self.calls.append(("get", zone, []))
        if "get" in self.fail_on:
            raise DnsProviderError("get failed")
        return list(self.zones.get(zone, []))

    async def set_records(self, zone: str, records: list[DnsRecord]) -> list[DnsRecord]:
        self.calls.append(("set", zone, list(records)))
        if "set" in self.fail_on:
            raise DnsProviderError("set failed")
        created = [self._with_id(r) for r in records]
        self.zones.setdefault(zone, []).extend(created)
        return created

    async def delete_records(self, zone: str, records: list[DnsRecord]) -> list[DnsRecord]:
        self.calls.append(("delete", zone, list(records)))
        if "delete" in self.fail_on:
            raise DnsProviderError("delete failed")
        doomed = {r.id for r in records}
        self.zones[zone] = [r for r in self.zones.get(zone, []) if r.id not in doomed]
        return list(records)


@pytest.fixture()
def make_provider():
    """Returns the InMemoryDnsProvider class so tests can seed zone records."""
    return InMemoryDnsProvider
