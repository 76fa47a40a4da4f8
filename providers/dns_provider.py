"""
providers/dns_provider.py

Responsibility: Defines the DNSProvider Protocol, the DnsRecord value object
and its address-record interpretation, plus name helpers shared by adapters.
Does NOT: make HTTP calls, read configuration, or decide which records change.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Protocol, Union, runtime_checkable

from exceptions import NotAddressRecordError, RecordParseError

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# Record types this application reads and writes. Everything else is opaque.
ADDRESS_RECORD_TYPES = ("A", "AAAA")


# ---------------------------------------------------------------------------
# Name helpers
# ---------------------------------------------------------------------------


def normalize_name(name: str) -> str:
    """Lower-cases a DNS name and strips surrounding whitespace and the trailing dot."""
    return name.strip().rstrip(".").lower()


def to_absolute_name(name: str, zone: str) -> str:
    """
    Converts a zone-relative record name into a normalized FQDN.

    "@" and "" denote the zone apex. Names that already end in the zone are
    returned normalized, so adapters can feed either form through here.

    Args:
        name: Relative or absolute record name, e.g. "www" or "www.example.com".
        zone: The zone the record lives in, e.g. "example.com".

    Returns:
        The FQDN without trailing dot, e.g. "www.example.com".
    """
    zone = normalize_name(zone)
    name = normalize_name(name)
    if name in ("", "@") or name == zone:
        return zone
    if name.endswith(f".{zone}"):
        return name
    return f"{name}.{zone}"


def to_relative_name(name: str, zone: str, apex: str = "@") -> str:
    """
    Converts an FQDN into the zone-relative form used by most DNS APIs.

    Args:
        name: Absolute record name, e.g. "www.example.com".
        zone: The zone the record lives in, e.g. "example.com".
        apex: Token the target API uses for the zone apex ("@" or "").

    Returns:
        The relative name, e.g. "www", or ``apex`` for the zone itself.
    """
    zone = normalize_name(zone)
    name = normalize_name(name)
    if name == zone:
        return apex
    suffix = f".{zone}"
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return name


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AddressRecord:
    """
    A DnsRecord successfully interpreted as an A or AAAA record.
    """

    name: str
    ip: IPAddress
    ttl: int = 0
    id: str = ""

    @property
    def type(self) -> str:
        return "A" if self.ip.version == 4 else "AAAA"

    def to_record(self) -> DnsRecord:
        return DnsRecord(name=self.name, type=self.type, value=str(self.ip), ttl=self.ttl, id=self.id)


@dataclass(frozen=True)
class DnsRecord:
    """
    A single DNS record as returned by a DNSProvider.

    All adapters hand back the same shape regardless of vendor, with ``name``
    normalized to a fully-qualified name without trailing dot.
    """

    # Fully-qualified DNS name, e.g. "k8s.example.com"
    name: str

    # Record type as reported by the provider ("A", "AAAA", "TXT", ...)
    type: str

    # Record data: the IP for address records, free-form for everything else
    value: str

    # TTL in seconds; 0 means provider default
    ttl: int = 0

    # Provider-assigned identifier; empty for records not yet created
    id: str = ""

    def to_address(self) -> AddressRecord:
        """
        Interprets this record as an address record.

        Returns:
            An AddressRecord carrying the parsed IP.

        Raises:
            NotAddressRecordError: If the record type is not A or AAAA.
            RecordParseError: If the value is not an IP literal, or its family
                does not match the record type.
        """
        record_type = self.type.strip().upper()
        if record_type not in ADDRESS_RECORD_TYPES:
            raise NotAddressRecordError(f"{self.name} is a {record_type} record")

        try:
            ip = ipaddress.ip_address(self.value.strip())
        except ValueError as exc:
            raise RecordParseError(
                f"{record_type} record {self.name} has invalid address {self.value!r}"
            ) from exc

        expected_version = 4 if record_type == "A" else 6
        if ip.version != expected_version:
            raise RecordParseError(
                f"{record_type} record {self.name} holds an IPv{ip.version} address {ip}"
            )

        return AddressRecord(name=normalize_name(self.name), ip=ip, ttl=self.ttl, id=self.id)


# ---------------------------------------------------------------------------
# Abstract interface — all DNS providers must implement this contract
# ---------------------------------------------------------------------------


@runtime_checkable
class DNSProvider(Protocol):
    """
    Abstract protocol for DNS record management.

    Every adapter (Cloudflare, DigitalOcean, Linode) supplies exactly these
    three capabilities. DnsService depends on this abstraction, never on a
    concrete implementation.
    """

    async def get_records(self, zone: str) -> list[DnsRecord]:
        """
        Returns every record in the zone, of any type and any name.

        Args:
            zone: The zone name, e.g. "example.com".

        Returns:
            A list of DnsRecord instances, possibly empty.

        Raises:
            DnsProviderError: If the API call fails.
        """
        ...

    async def set_records(self, zone: str, records: list[DnsRecord]) -> list[DnsRecord]:
        """
        Creates the given records in the zone.

        Args:
            zone: The zone name.
            records: Records to create; ``id`` is ignored.

        Returns:
            The records as confirmed by the provider.

        Raises:
            DnsProviderError: If any API call fails.
        """
        ...

    async def delete_records(self, zone: str, records: list[DnsRecord]) -> list[DnsRecord]:
        """
        Deletes the given records from the zone.

        Args:
            zone: The zone name.
            records: Records to delete, normally as returned by get_records().

        Returns:
            The records that were deleted.

        Raises:
            DnsProviderError: If any API call fails.
        """
        ...
