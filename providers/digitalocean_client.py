"""
providers/digitalocean_client.py

Responsibility: Implements the DNSProvider protocol using the DigitalOcean
Domains API (v2). Record names on this API are relative to the domain,
with "@" for the apex; they are converted to and from FQDNs here.
Does NOT: read configuration, decide which records change, or schedule work.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exceptions import DnsProviderError
from providers.dns_provider import DnsRecord, normalize_name, to_absolute_name, to_relative_name

logger = logging.getLogger(__name__)

_DIGITALOCEAN_BASE = "https://api.digitalocean.com/v2"

# Maximum page size accepted by the DigitalOcean API
_PAGE_SIZE = 200


class DigitalOceanClient:
    """
    Implements DNSProvider for DigitalOcean-hosted domains.

    A zone name maps directly onto a DigitalOcean domain, so no ID lookup is
    needed. Records created with ttl=0 omit the field and get the domain's
    default TTL.

    Collaborators:
        - httpx.AsyncClient: injected HTTP client; kept alive externally
        - DNSProvider: this class satisfies the protocol contract
    """

    def __init__(self, http_client: httpx.AsyncClient, api_token: str) -> None:
        """
        Args:
            http_client: A long-lived httpx.AsyncClient instance.
            api_token: A DigitalOcean personal access token with write scope.
        """
        self._client = http_client
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }

    # ---------------------------------------------------------------------------
    # DNSProvider implementation
    # ---------------------------------------------------------------------------

    async def get_records(self, zone: str) -> list[DnsRecord]:
        """
        Returns all records of the domain, following ``links.pages.next``.

        Raises:
            DnsProviderError: If the DigitalOcean API returns an error.
        """
        zone = normalize_name(zone)
        url: str | None = f"{_DIGITALOCEAN_BASE}/domains/{zone}/records"
        params: dict[str, Any] | None = {"per_page": _PAGE_SIZE}

        records: list[DnsRecord] = []
        while url:
            logger.debug("GET %s", url)
            data = await self._request("GET", url, params=params)
            records.extend(self._parse_record(r, zone) for r in data.get("domain_records") or [])

            # The "next" link already carries page and per_page.
            url = ((data.get("links") or {}).get("pages") or {}).get("next")
            params = None

        return records

    async def set_records(self, zone: str, records: list[DnsRecord]) -> list[DnsRecord]:
        """
        Creates each record in the domain.

        Raises:
            DnsProviderError: On the first failing API call.
        """
        zone = normalize_name(zone)
        url = f"{_DIGITALOCEAN_BASE}/domains/{zone}/records"

        created: list[DnsRecord] = []
        for record in records:
            payload: dict[str, Any] = {
                "type": record.type,
                "name": to_relative_name(record.name, zone, apex="@"),
                "data": record.value,
            }
            if record.ttl:
                payload["ttl"] = record.ttl

            logger.debug("POST %s payload=%s", url, payload)
            data = await self._request("POST", url, json=payload)
            created.append(self._parse_record(data.get("domain_record"), zone))
        return created

    async def delete_records(self, zone: str, records: list[DnsRecord]) -> list[DnsRecord]:
        """
        Deletes each record from the domain by its ID.

        Raises:
            DnsProviderError: On the first failing API call, or when a record
                carries no ID.
        """
        zone = normalize_name(zone)

        deleted: list[DnsRecord] = []
        for record in records:
            if not record.id:
                raise DnsProviderError(
                    f"Cannot delete DigitalOcean record {record.type} {record.name} without an id"
                )
            url = f"{_DIGITALOCEAN_BASE}/domains/{zone}/records/{record.id}"
            logger.debug("DELETE %s", url)
            await self._request("DELETE", url)
            deleted.append(record)
        return deleted

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Sends an authenticated HTTP request to the DigitalOcean API.

        Returns:
            The parsed JSON body, or an empty dict for 204 No Content.

        Raises:
            DnsProviderError: If the HTTP call fails.
        """
        try:
            response = await self._client.request(
                method, url, headers=self._headers, params=params, json=json
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DnsProviderError(
                f"DigitalOcean API error {exc.response.status_code} for {method} {url}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.RequestError as exc:
            raise DnsProviderError(
                f"Network error calling DigitalOcean API ({method} {url}): {exc}"
            ) from exc

        if response.status_code == 204 or not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise DnsProviderError(
                f"DigitalOcean API returned a non-JSON body for {method} {url}: {response.text[:200]!r}"
            ) from exc
        if not isinstance(body, dict):
            raise DnsProviderError(f"DigitalOcean API returned an unexpected body for {method} {url}")
        return body

    @staticmethod
    def _parse_record(raw: dict[str, Any], zone: str) -> DnsRecord:
        try:
            return DnsRecord(
                id=str(raw["id"]),
                name=to_absolute_name(raw.get("name", "@"), zone),
                type=raw.get("type", ""),
                value=str(raw.get("data", "")),
                ttl=int(raw.get("ttl") or 0),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise DnsProviderError(f"Malformed DigitalOcean record: {raw!r}") from exc
