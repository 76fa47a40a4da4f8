"""
exceptions.py

Responsibility: Defines all custom exception classes used across the application.
Does NOT: contain business logic, logging, or HTTP handling.
"""

from __future__ import annotations


class ConfigLoadError(Exception):
    """
    Raised by the settings loader when the layered configuration is missing a
    required value, contains an invalid value, or the config file cannot be
    read. Always fatal at startup.
    """


class KubernetesError(Exception):
    """
    Raised by KubernetesService when the cluster cannot be reached, credentials
    cannot be loaded, or the API returns an error.
    """


class DnsProviderError(Exception):
    """
    Raised by any DNSProvider implementation when a DNS API call fails.

    Includes a human-readable message describing the failure. DnsService also
    raises it, wrapping the provider's error, when a reconciliation step fails.
    """


class RecordParseError(Exception):
    """
    Raised by DnsRecord.to_address() when a record cannot be interpreted as
    an address record (bad IP literal, or IP family not matching the type).
    """


class NotAddressRecordError(RecordParseError):
    """
    Raised by DnsRecord.to_address() when the record type is not A or AAAA.

    This is an expected outcome for TXT, CNAME, MX and friends; callers skip
    such records without logging an error.
    """
