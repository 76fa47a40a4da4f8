"""
services/dns_service.py

Responsibility: Reconciles the address records of one hostname against a
desired set of IPs — computes the stale records to delete and the missing
records to create from a single provider snapshot, then applies them
(deletes first, then creates).
Does NOT: make HTTP calls directly, read configuration, or talk to Kubernetes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from config import DnsTarget
from exceptions import DnsProviderError, NotAddressRecordError, RecordParseError
from providers.dns_provider import AddressRecord, DnsRecord, DNSProvider, IPAddress, normalize_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordChanges:
    """
    The record changes planned (or applied) for one target.

    Attributes:
        to_delete: Existing provider records to remove.
        to_create: New address records to add.
    """

    to_delete: list[DnsRecord] = field(default_factory=list)
    to_create: list[DnsRecord] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_delete and not self.to_create


class DnsService:
    """
    Converges a hostname's A/AAAA records onto a desired IP set.

    Only address records whose name equals the target hostname are ever
    candidates; records of any other name or type are left untouched.

    Collaborators:
        - DNSProvider: abstract interface satisfied by the Cloudflare,
          DigitalOcean and Linode clients
    """

    def __init__(self, dns_provider: DNSProvider) -> None:
        """
        Args:
            dns_provider: Any DNSProvider implementation.
        """
        self._provider = dns_provider

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def reconcile(self, target: DnsTarget, desired: Iterable[IPAddress]) -> RecordChanges:
        """
        Runs one reconciliation pass for a target.

        Fetches the zone once, deletes stale records in one batch, then
        creates missing records in one batch. A failed delete aborts the pass
        before anything is created.

        Args:
            target: The hostname, zone and TTL to manage.
            desired: The IPs the hostname should resolve to. Duplicates are
                allowed and collapse to a single record.

        Returns:
            The changes that were applied.

        Raises:
            DnsProviderError: If fetching, deleting or creating records fails.
        """
        desired = list(desired)

        try:
            records = await self._provider.get_records(target.zone)
        except DnsProviderError as exc:
            raise DnsProviderError(f"Failed to get records for zone {target.zone}: {exc}") from exc

        changes = self.plan(records, target, desired)

        if changes.to_delete:
            logger.info(
                "Deleting %d stale record(s) for %s: %s",
                len(changes.to_delete),
                target.hostname,
                ", ".join(r.value for r in changes.to_delete),
            )
            try:
                await self._provider.delete_records(target.zone, changes.to_delete)
            except DnsProviderError as exc:
                raise DnsProviderError(f"Failed to delete records for {target.hostname}: {exc}") from exc

        if changes.to_create:
            logger.info(
                "Creating %d record(s) for %s: %s",
                len(changes.to_create),
                target.hostname,
                ", ".join(r.value for r in changes.to_create),
            )
            try:
                await self._provider.set_records(target.zone, changes.to_create)
            except DnsProviderError as exc:
                raise DnsProviderError(f"Failed to create records for {target.hostname}: {exc}") from exc

        logger.info(
            "Reconciled %s: %d address(es) desired, %d deleted, %d created.",
            target.hostname,
            len(set(desired)),
            len(changes.to_delete),
            len(changes.to_create),
        )
        return changes

    @staticmethod
    def plan(records: Iterable[DnsRecord], target: DnsTarget, desired: Iterable[IPAddress]) -> RecordChanges:
        """
        Computes the changes needed to converge without touching the provider.

        Args:
            records: Snapshot of every record in the target's zone.
            target: The hostname and TTL to manage.
            desired: The IPs the hostname should resolve to.

        Returns:
            The records to delete and the records to create.
        """
        hostname = normalize_name(target.hostname)
        desired_ips = list(dict.fromkeys(desired))
        desired_set = set(desired_ips)

        # Delete pass: stale addresses, plus repeated copies of a kept address.
        to_delete: list[DnsRecord] = []
        existing: set[IPAddress] = set()
        for record, address in _address_records(records):
            if address.name != hostname:
                continue
            if address.ip not in desired_set or address.ip in existing:
                to_delete.append(record)
                continue
            existing.add(address.ip)

        # Create pass: desired addresses with no record in the snapshot.
        to_create = [
            AddressRecord(name=hostname, ip=ip, ttl=target.ttl).to_record()
            for ip in desired_ips
            if ip not in existing
        ]

        return RecordChanges(to_delete=to_delete, to_create=to_create)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _address_records(records: Iterable[DnsRecord]) -> Iterable[tuple[DnsRecord, AddressRecord]]:
    """Yields (record, parsed) for every record that parses as an address record."""
    for record in records:
        try:
            address = record.to_address()
        except NotAddressRecordError:
            continue
        except RecordParseError as exc:
            logger.error("Skipping unparsable record %s %s: %s", record.type, record.name, exc)
            continue
        yield record, address
