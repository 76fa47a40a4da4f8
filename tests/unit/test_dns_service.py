"""
tests/unit/test_dns_service.py

Unit tests for services/dns_service.py.
DNS state lives in the in-memory provider from conftest — no network calls.
"""

from __future__ import annotations

from ipaddress import ip_address

import pytest

from config import DnsTarget
from exceptions import DnsProviderError
from providers.dns_provider import DnsRecord
from services.dns_service import DnsService

_ZONE = "example.com"
_HOST = "k8s.example.com"


def _target(**kwargs) -> DnsTarget:
    return DnsTarget(
        hostname=kwargs.get("hostname", _HOST),
        zone=kwargs.get("zone", _ZONE),
        ttl=kwargs.get("ttl", 300),
    )


def _a(value: str, name: str = _HOST, record_id: str = "") -> DnsRecord:
    return DnsRecord(name=name, type="A", value=value, ttl=300, id=record_id)


def _ips(*values: str) -> list:
    return [ip_address(v) for v in values]


def _address_values(provider, name: str = _HOST) -> list[str]:
    return sorted(r.value for r in provider.zones[_ZONE] if r.name == name and r.type in ("A", "AAAA"))


# ---------------------------------------------------------------------------
# plan — convergence
# ---------------------------------------------------------------------------


def test_plan_converges_stale_and_missing_addresses():
    """Existing {.1, .2} with desired {.2, .3} deletes exactly .1 and creates exactly .3."""
    records = [_a("10.0.0.1", record_id="r1"), _a("10.0.0.2", record_id="r2")]

    changes = DnsService.plan(records, _target(), _ips("10.0.0.2", "10.0.0.3"))

    assert [r.value for r in changes.to_delete] == ["10.0.0.1"]
    assert [r.value for r in changes.to_create] == ["10.0.0.3"]
    assert changes.to_create[0].name == _HOST
    assert changes.to_create[0].type == "A"
    assert changes.to_create[0].ttl == 300


def test_plan_ignores_other_names():
    records = [_a("10.0.0.9", name="other.example.com")]

    changes = DnsService.plan(records, _target(), _ips("10.0.0.1"))

    assert changes.to_delete == []
    assert [r.value for r in changes.to_create] == ["10.0.0.1"]


def test_plan_never_touches_non_address_records():
    """A TXT record on the same hostname is never a candidate, whatever is desired."""
    txt = DnsRecord(name=_HOST, type="TXT", value="heritage=kube-dns-sync", id="t1")
    cname = DnsRecord(name=_HOST, type="CNAME", value="elsewhere.example.net", id="c1")

    for desired in ([], _ips("10.0.0.1")):
        changes = DnsService.plan([txt, cname], _target(), desired)
        assert txt not in changes.to_delete
        assert cname not in changes.to_delete
        assert all(r.type in ("A", "AAAA") for r in changes.to_create)


def test_plan_skips_unparsable_address_records(caplog):
    broken = DnsRecord(name=_HOST, type="A", value="not-an-ip", id="b1")

    changes = DnsService.plan([broken], _target(), _ips("10.0.0.1"))

    assert changes.to_delete == []
    assert [r.value for r in changes.to_create] == ["10.0.0.1"]
    assert "Skipping unparsable record" in caplog.text


def test_plan_collapses_duplicate_desired_addresses():
    changes = DnsService.plan([], _target(), _ips("10.0.0.1", "10.0.0.1", "10.0.0.2"))

    assert [r.value for r in changes.to_create] == ["10.0.0.1", "10.0.0.2"]


def test_plan_removes_duplicate_provider_records():
    records = [_a("10.0.0.1", record_id="r1"), _a("10.0.0.1", record_id="r2")]

    changes = DnsService.plan(records, _target(), _ips("10.0.0.1"))

    assert [r.id for r in changes.to_delete] == ["r2"]
    assert changes.to_create == []


def test_plan_handles_ipv6_as_aaaa():
    records = [DnsRecord(name=_HOST, type="AAAA", value="2001:db8::1", id="r6")]

    changes = DnsService.plan(records, _target(), _ips("2001:db8:0:0::1", "2001:db8::2"))

    assert changes.to_delete == []
    assert [(r.type, r.value) for r in changes.to_create] == [("AAAA", "2001:db8::2")]


def test_plan_matches_names_case_insensitively():
    records = [_a("10.0.0.1", name="K8S.Example.com.", record_id="r1")]

    changes = DnsService.plan(records, _target(), _ips("10.0.0.1"))

    assert changes.is_empty


def test_plan_empty_desired_deletes_all_address_records_for_host():
    records = [_a("10.0.0.1", record_id="r1"), _a("10.0.0.2", record_id="r2")]

    changes = DnsService.plan(records, _target(), [])

    assert sorted(r.id for r in changes.to_delete) == ["r1", "r2"]
    assert changes.to_create == []


# ---------------------------------------------------------------------------
# reconcile — applying changes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reconcile_applies_delete_then_create(make_provider):
    provider = make_provider({_ZONE: [_a("10.0.0.1"), _a("10.0.0.2")]})
    service = DnsService(provider)

    await service.reconcile(_target(), _ips("10.0.0.2", "10.0.0.3"))

    assert [op for op, _, _ in provider.calls] == ["get", "delete", "set"]
    assert _address_values(provider) == ["10.0.0.2", "10.0.0.3"]


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(make_provider):
    """A second run with the same desired set issues no delete and no create."""
    provider = make_provider({_ZONE: [_a("10.0.0.1"), _a("10.0.0.9", name="other.example.com")]})
    service = DnsService(provider)
    desired = _ips("10.0.0.2", "10.0.0.3")

    await service.reconcile(_target(), desired)
    calls_after_first = len(provider.calls)
    changes = await service.reconcile(_target(), desired)

    assert changes.is_empty
    assert [op for op, _, _ in provider.calls[calls_after_first:]] == ["get"]


@pytest.mark.asyncio
async def test_reconcile_skips_provider_calls_when_nothing_changes(make_provider):
    provider = make_provider({_ZONE: [_a("10.0.0.1")]})

    await DnsService(provider).reconcile(_target(), _ips("10.0.0.1"))

    assert provider.calls_to("delete") == []
    assert provider.calls_to("set") == []


@pytest.mark.asyncio
async def test_reconcile_batches_each_pass_into_one_call(make_provider):
    provider = make_provider({_ZONE: [_a("10.0.0.1"), _a("10.0.0.2")]})

    await DnsService(provider).reconcile(_target(), _ips("10.0.0.3", "10.0.0.4"))

    assert len(provider.calls_to("delete")) == 1
    assert len(provider.calls_to("delete")[0]) == 2
    assert len(provider.calls_to("set")) == 1
    assert len(provider.calls_to("set")[0]) == 2


@pytest.mark.asyncio
async def test_reconcile_leaves_txt_record_on_same_hostname(make_provider):
    txt = DnsRecord(name=_HOST, type="TXT", value="owner=cluster-a")
    provider = make_provider({_ZONE: [txt, _a("10.0.0.1")]})

    await DnsService(provider).reconcile(_target(), [])

    remaining = provider.zones[_ZONE]
    assert [(r.type, r.value) for r in remaining] == [("TXT", "owner=cluster-a")]


@pytest.mark.asyncio
async def test_reconcile_delete_failure_aborts_create(make_provider):
    """When the delete batch fails, no records are created for that target."""
    provider = make_provider({_ZONE: [_a("10.0.0.1")]})
    provider.fail_on.add("delete")

    with pytest.raises(DnsProviderError, match="Failed to delete records"):
        await DnsService(provider).reconcile(_target(), _ips("10.0.0.2"))

    assert provider.calls_to("set") == []


@pytest.mark.asyncio
async def test_reconcile_wraps_get_failure(make_provider):
    provider = make_provider()
    provider.fail_on.add("get")

    with pytest.raises(DnsProviderError, match="Failed to get records for zone example.com"):
        await DnsService(provider).reconcile(_target(), _ips("10.0.0.1"))


@pytest.mark.asyncio
async def test_reconcile_wraps_create_failure(make_provider):
    provider = make_provider({_ZONE: []})
    provider.fail_on.add("set")

    with pytest.raises(DnsProviderError, match="Failed to create records"):
        await DnsService(provider).reconcile(_target(), _ips("10.0.0.1"))
