"""
scheduler.py

Responsibility: Runs the periodic sync loop — for every configured target,
collect node IPs and reconcile DNS, then wait for the interval or the stop
signal. Per-target failures are logged and never stop the loop.
Does NOT: contain DNS diffing logic, Kubernetes calls, or signal handling
— those are delegated to DnsService, KubernetesService and app.py.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from config import DnsTarget
from exceptions import DnsProviderError, KubernetesError
from providers.dns_provider import IPAddress
from services.dns_service import RecordChanges

logger = logging.getLogger(__name__)


class AddressCollector(Protocol):
    async def list_external_ips(self, label_selector: dict[str, str]) -> list[IPAddress]: ...


class Reconciler(Protocol):
    async def reconcile(self, target: DnsTarget, desired: list[IPAddress]) -> RecordChanges: ...


class SyncScheduler:
    """
    Drives Collector → Reconciler for each target, one tick at a time.

    Targets are processed strictly in order; the collector and reconciler
    are reused across ticks without locking.

    Collaborators:
        - AddressCollector: satisfied by KubernetesService
        - Reconciler: satisfied by DnsService
    """

    def __init__(
        self,
        targets: Sequence[DnsTarget],
        collector: AddressCollector,
        reconciler: Reconciler,
        interval: float,
    ) -> None:
        """
        Args:
            targets: Targets to sync, in order.
            collector: Provides the desired IPs for a label selector.
            reconciler: Applies the desired IPs to DNS.
            interval: Seconds to wait between the end of one tick and the next.
        """
        self._targets = tuple(targets)
        self._collector = collector
        self._reconciler = reconciler
        self._interval = interval

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def run(self, stop_event: asyncio.Event, finished_event: asyncio.Event | None = None) -> None:
        """
        Runs ticks until stop_event is set.

        The stop signal is checked between targets and interrupts the
        inter-tick wait immediately. Calls already in flight are allowed to
        finish. finished_event, when given, is set once the loop has exited.

        Args:
            stop_event: Process-wide cancellation signal.
            finished_event: One-shot completion marker awaited by the caller.
        """
        logger.info(
            "Sync loop started — %d target(s), interval %ss.", len(self._targets), f"{self._interval:g}"
        )
        try:
            while True:
                await self.run_once(stop_event)

                if stop_event.is_set():
                    break
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
                except asyncio.TimeoutError:
                    continue
                break
        finally:
            logger.info("Sync loop stopped.")
            if finished_event is not None:
                finished_event.set()

    async def run_once(self, stop_event: asyncio.Event | None = None) -> dict[str, bool]:
        """
        Runs a single tick over all targets.

        Args:
            stop_event: When set, remaining targets are skipped.

        Returns:
            Mapping of target hostname to whether its sync succeeded.
            Targets skipped because of the stop signal are omitted.
        """
        results: dict[str, bool] = {}
        for target in self._targets:
            if stop_event is not None and stop_event.is_set():
                logger.info("Stop requested — skipping remaining targets.")
                break
            results[target.hostname] = await self.sync_target(target)
        return results

    async def sync_target(self, target: DnsTarget) -> bool:
        """
        Collects the node IPs for one target and reconciles its records.

        Returns:
            True on success, False if the target failed this tick.
        """
        try:
            addresses = await self._collector.list_external_ips(target.label_selector)
            await self._reconciler.reconcile(target, addresses)
        except (KubernetesError, DnsProviderError) as exc:
            logger.error("Failed to sync %s: %s", target.hostname, exc)
            return False
        except Exception:
            logger.exception("Unexpected error while syncing %s.", target.hostname)
            return False
        return True
