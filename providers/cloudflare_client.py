"""
providers/cloudflare_client.py

Responsibility: Implements the DNSProvider protocol using the Cloudflare REST API.
All Cloudflare HTTP calls are concentrated here — no other file may call the
Cloudflare API directly.
Does NOT: read configuration, decide which records change, or schedule work.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exceptions import DnsProviderError
from providers.dns_provider import DnsRecord, normalize_name

logger = logging.getLogger(__name__)

_CLOUDFLARE_BASE = "https://api.cloudflare.com/client/v4"

# Cloudflare caps per_page for dns_records at 5000; 100 keeps responses small.
_PAGE_SIZE = 100

# NOTE: ttl=1 means "automatic" on Cloudflare; we expose it as 0 (provider default).
_AUTO_TTL = 1


class CloudflareClient:
    """
    Implements DNSProvider for the Cloudflare DNS REST API (v4).

    Zones are addressed by name in the protocol; the Cloudflare zone ID is
    resolved on first use and cached for the lifetime of the client.

    All outbound Cloudflare requests go through the injected httpx.AsyncClient,
    making this class fully testable without real network calls (use respx.mock).

    Collaborators:
        - httpx.AsyncClient: injected HTTP client; must be kept alive externally
        - DNSProvider: this class satisfies the protocol contract
    """

    def __init__(self, http_client: httpx.AsyncClient, api_token: str) -> None:
        """
        Initialises the client with an HTTP client and a Cloudflare API token.

        Args:
            http_client: A long-lived httpx.AsyncClient instance.
            api_token: A Cloudflare API token with Zone:Read and DNS:Edit permissions.
        """
        self._client = http_client
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }
        self._zone_ids: dict[str, str] = {}

    # ---------------------------------------------------------------------------
    # DNSProvider implementation
    # ---------------------------------------------------------------------------

    async def get_records(self, zone: str) -> list[DnsRecord]:
        """
        Returns all records in the given Cloudflare zone, following pagination.

        Args:
            zone: The zone name, e.g. "example.com".

        Returns:
            A list of DnsRecord instances, possibly empty.

        Raises:
            DnsProviderError: If the Cloudflare API returns an error.
        """
        zone_id = await self._resolve_zone_id(zone)
        url = f"{_CLOUDFLARE_BASE}/zones/{zone_id}/dns_records"

        records: list[DnsRecord] = []
        page = 1
        while True:
            logger.debug("GET %s page=%d", url, page)
            data = await self._request("GET", url, params={"page": page, "per_page": _PAGE_SIZE})
            records.extend(self._parse_record(r) for r in data.get("result") or [])

            total_pages = (data.get("result_info") or {}).get("total_pages", 1)
            if page >= total_pages:
                break
            page += 1

        return records

    async def set_records(self, zone: str, records: list[DnsRecord]) -> list[DnsRecord]:
        """
        Creates each record in the given Cloudflare zone.

        Args:
            zone: The zone name.
            records: Records to create.

        Returns:
            The created records as returned by Cloudflare.

        Raises:
            DnsProviderError: On the first failing API call.
        """
        zone_id = await self._resolve_zone_id(zone)
        url = f"{_CLOUDFLARE_BASE}/zones/{zone_id}/dns_records"

        created: list[DnsRecord] = []
        for record in records:
            payload: dict[str, Any] = {
                "type": record.type,
                "name": normalize_name(record.name),
                "content": record.value,
                "ttl": record.ttl or _AUTO_TTL,
                "proxied": False,
            }
            logger.debug("POST %s payload=%s", url, payload)
            data = await self._request("POST", url, json=payload)
            created.append(self._parse_record(data.get("result")))
        return created

    async def delete_records(self, zone: str, records: list[DnsRecord]) -> list[DnsRecord]:
        """
        Deletes each record from the given Cloudflare zone.

        Records without a provider ID are looked up by type, name and content
        first; records that cannot be found are skipped.

        Args:
            zone: The zone name.
            records: Records to delete.

        Returns:
            The records that were deleted.

        Raises:
            DnsProviderError: On the first failing API call.
        """
        zone_id = await self._resolve_zone_id(zone)

        deleted: list[DnsRecord] = []
        for record in records:
            record_id = record.id or await self._find_record_id(zone_id, record)
            if not record_id:
                logger.debug("No Cloudflare record matches %s %s %s — skipping.", record.type, record.name, record.value)
                continue

            url = f"{_CLOUDFLARE_BASE}/zones/{zone_id}/dns_records/{record_id}"
            logger.debug("DELETE %s", url)
            await self._request("DELETE", url)
            deleted.append(record)
        return deleted

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _resolve_zone_id(self, zone: str) -> str:
        """
        Looks up the Cloudflare zone ID for a zone name, caching the result.

        Raises:
            DnsProviderError: If the zone is not visible to the API token.
        """
        zone = normalize_name(zone)
        cached = self._zone_ids.get(zone)
        if cached:
            return cached

        data = await self._request("GET", f"{_CLOUDFLARE_BASE}/zones", params={"name": zone})
        result = data.get("result") or []
        if not result:
            raise DnsProviderError(f"Cloudflare zone not found: {zone}")

        zone_id = _record_id(result[0])
        self._zone_ids[zone] = zone_id
        logger.debug("Resolved Cloudflare zone %s to %s.", zone, zone_id)
        return zone_id

    async def _find_record_id(self, zone_id: str, record: DnsRecord) -> str:
        params = {"type": record.type, "name": normalize_name(record.name), "content": record.value}
        data = await self._request("GET", f"{_CLOUDFLARE_BASE}/zones/{zone_id}/dns_records", params=params)
        result = data.get("result") or []
        return _record_id(result[0]) if result else ""

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Sends an authenticated HTTP request to the Cloudflare API.

        Args:
            method: HTTP verb ("GET", "POST", "DELETE").
            url: Full URL of the Cloudflare API endpoint.
            params: Optional query-string parameters.
            json: Optional JSON request body.

        Returns:
            The parsed JSON response body as a dict.

        Raises:
            DnsProviderError: If the HTTP call fails or the API returns
                              success=false in the response body.
        """
        try:
            response = await self._client.request(
                method, url, headers=self._headers, params=params, json=json
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DnsProviderError(
                f"Cloudflare API error {exc.response.status_code} for {method} {url}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.RequestError as exc:
            raise DnsProviderError(
                f"Network error calling Cloudflare API ({method} {url}): {exc}"
            ) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise DnsProviderError(
                f"Cloudflare API returned a non-JSON body for {method} {url}: {response.text[:200]!r}"
            ) from exc
        if not isinstance(body, dict):
            raise DnsProviderError(f"Cloudflare API returned an unexpected body for {method} {url}")

        # NOTE: Cloudflare wraps all responses in {"success": bool, "result": ...}
        if not body.get("success", False):
            errors = body.get("errors", [])
            raise DnsProviderError(
                f"Cloudflare API returned success=false for {method} {url}. "
                f"Errors: {errors}"
            )

        return body

    @staticmethod
    def _parse_record(raw: dict[str, Any]) -> DnsRecord:
        """
        Converts a raw Cloudflare API record dict into a typed DnsRecord.

        Args:
            raw: A single record object from the Cloudflare API response.

        Returns:
            A DnsRecord populated from the raw dict.

        Raises:
            DnsProviderError: If the record is missing required fields.
        """
        try:
            ttl = int(raw.get("ttl") or 0)
            return DnsRecord(
                id=_record_id(raw),
                name=normalize_name(raw["name"]),
                type=raw.get("type", ""),
                value=str(raw.get("content", "")),
                ttl=0 if ttl == _AUTO_TTL else ttl,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise DnsProviderError(f"Malformed Cloudflare record: {raw!r}") from exc


def _record_id(raw: Any) -> str:
    try:
        return str(raw["id"])
    except (KeyError, TypeError) as exc:
        raise DnsProviderError(f"Cloudflare object without an id: {raw!r}") from exc
