"""
providers/linode_client.py

Responsibility: Implements the DNSProvider protocol using the Linode (Akamai)
Domains API (v4). Zones are looked up by name to obtain the numeric domain ID;
record names are relative to the domain with "" for the apex.
Does NOT: read configuration, decide which records change, or schedule work.
"""

from __future__ import annotations

import json as jsonlib
import logging
from typing import Any

import httpx

from exceptions import DnsProviderError
from providers.dns_provider import DnsRecord, normalize_name, to_absolute_name, to_relative_name

logger = logging.getLogger(__name__)

_LINODE_BASE = "https://api.linode.com/v4"

# Maximum page size accepted by the Linode API
_PAGE_SIZE = 500


class LinodeClient:
    """
    Implements DNSProvider for Linode-hosted domains.

    Domain IDs are resolved via the X-Filter header on first use and cached.

    Collaborators:
        - httpx.AsyncClient: injected HTTP client; kept alive externally
        - DNSProvider: this class satisfies the protocol contract
    """

    def __init__(self, http_client: httpx.AsyncClient, api_token: str) -> None:
        """
        Args:
            http_client: A long-lived httpx.AsyncClient instance.
            api_token: A Linode personal access token with domains:read_write.
        """
        self._client = http_client
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }
        self._domain_ids: dict[str, int] = {}

    # ---------------------------------------------------------------------------
    # DNSProvider implementation
    # ---------------------------------------------------------------------------

    async def get_records(self, zone: str) -> list[DnsRecord]:
        """
        Returns all records of the domain, walking every result page.

        Raises:
            DnsProviderError: If the Linode API returns an error.
        """
        zone = normalize_name(zone)
        domain_id = await self._resolve_domain_id(zone)
        url = f"{_LINODE_BASE}/domains/{domain_id}/records"

        records: list[DnsRecord] = []
        page = 1
        while True:
            logger.debug("GET %s page=%d", url, page)
            data = await self._request("GET", url, params={"page": page, "page_size": _PAGE_SIZE})
            records.extend(self._parse_record(r, zone) for r in data.get("data") or [])

            if page >= int(data.get("pages") or 1):
                break
            page += 1

        return records

    async def set_records(self, zone: str, records: list[DnsRecord]) -> list[DnsRecord]:
        """
        Creates each record in the domain.

        Raises:
            DnsProviderError: On the first failing API call.
        """
        zone = normalize_name(zone)
        domain_id = await self._resolve_domain_id(zone)
        url = f"{_LINODE_BASE}/domains/{domain_id}/records"

        created: list[DnsRecord] = []
        for record in records:
            payload: dict[str, Any] = {
                "type": record.type,
                "name": to_relative_name(record.name, zone, apex=""),
                "target": record.value,
                "ttl_sec": record.ttl,
            }
            logger.debug("POST %s payload=%s", url, payload)
            data = await self._request("POST", url, json=payload)
            created.append(self._parse_record(data, zone))
        return created

    async def delete_records(self, zone: str, records: list[DnsRecord]) -> list[DnsRecord]:
        """
        Deletes each record from the domain by its ID.

        Raises:
            DnsProviderError: On the first failing API call, or when a record
                carries no ID.
        """
        zone = normalize_name(zone)
        domain_id = await self._resolve_domain_id(zone)

        deleted: list[DnsRecord] = []
        for record in records:
            if not record.id:
                raise DnsProviderError(
                    f"Cannot delete Linode record {record.type} {record.name} without an id"
                )
            url = f"{_LINODE_BASE}/domains/{domain_id}/records/{record.id}"
            logger.debug("DELETE %s", url)
            await self._request("DELETE", url)
            deleted.append(record)
        return deleted

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _resolve_domain_id(self, zone: str) -> int:
        cached = self._domain_ids.get(zone)
        if cached is not None:
            return cached

        headers = {"X-Filter": jsonlib.dumps({"domain": zone})}
        data = await self._request("GET", f"{_LINODE_BASE}/domains", headers=headers)
        matches = [
            d for d in data.get("data") or []
            if isinstance(d, dict) and normalize_name(str(d.get("domain", ""))) == zone
        ]
        if not matches:
            raise DnsProviderError(f"Linode domain not found: {zone}")

        try:
            domain_id = int(matches[0]["id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DnsProviderError(f"Malformed Linode domain: {matches[0]!r}") from exc
        self._domain_ids[zone] = domain_id
        logger.debug("Resolved Linode domain %s to %d.", zone, domain_id)
        return domain_id

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """
        Sends an authenticated HTTP request to the Linode API.

        Raises:
            DnsProviderError: If the HTTP call fails.
        """
        try:
            response = await self._client.request(
                method,
                url,
                headers={**self._headers, **(headers or {})},
                params=params,
                json=json,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DnsProviderError(
                f"Linode API error {exc.response.status_code} for {method} {url}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.RequestError as exc:
            raise DnsProviderError(
                f"Network error calling Linode API ({method} {url}): {exc}"
            ) from exc

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise DnsProviderError(
                f"Linode API returned a non-JSON body for {method} {url}: {response.text[:200]!r}"
            ) from exc
        if not isinstance(body, dict):
            raise DnsProviderError(f"Linode API returned an unexpected body for {method} {url}")
        return body

    @staticmethod
    def _parse_record(raw: dict[str, Any], zone: str) -> DnsRecord:
        try:
            return DnsRecord(
                id=str(raw["id"]),
                name=to_absolute_name(raw.get("name") or "", zone),
                type=raw.get("type", ""),
                value=str(raw.get("target", "")),
                ttl=int(raw.get("ttl_sec") or 0),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise DnsProviderError(f"Malformed Linode record: {raw!r}") from exc
