"""
services/kubernetes_service.py

Responsibility: Collects the external IP addresses of ready Kubernetes nodes
matching a label selector. Cluster credentials are loaded once at startup:
an explicit kubeconfig path when configured, otherwise the in-cluster service
account first, then the default kubeconfig location.
Does NOT: talk to DNS providers, decide which records change, or schedule work.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from collections.abc import Mapping
from typing import Any

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.exceptions import ApiException

from exceptions import KubernetesError
from providers.dns_provider import IPAddress

logger = logging.getLogger(__name__)

_NODE_READY = "Ready"
_CONDITION_TRUE = "True"
_EXTERNAL_IP = "ExternalIP"


def format_label_selector(label_selector: Mapping[str, str]) -> str:
    """
    Renders an exact-match label mapping as a Kubernetes selector string.

    Args:
        label_selector: e.g. {"node-role.kubernetes.io/edge": "true"}.

    Returns:
        "key=value" pairs joined by commas; "" selects every node.
    """
    return ",".join(f"{key}={value}" for key, value in label_selector.items())


def is_node_ready(node: Any) -> bool:
    """
    Returns True if the node reports a Ready condition with status "True".

    Nodes without the condition, or with it False/Unknown, are not ready.
    """
    conditions = (node.status.conditions if node.status else None) or []
    return any(c.type == _NODE_READY and c.status == _CONDITION_TRUE for c in conditions)


class KubernetesService:
    """
    Discovers the external IPs of ready cluster nodes.

    Kubernetes API calls are blocking and are offloaded to a thread
    via asyncio.to_thread to keep the event loop unblocked.

    Collaborators:
        - kubernetes Python client: reads CoreV1 Node resources
    """

    def __init__(self, core_api: Any) -> None:
        """
        Initialises the service with a ready-to-use CoreV1Api.

        Args:
            core_api: A kubernetes.client.CoreV1Api (or a test double).
        """
        self._api = core_api

    @classmethod
    def from_kubeconfig(cls, kubeconfig_path: str = "") -> KubernetesService:
        """
        Loads cluster credentials and returns a connected service.

        Args:
            kubeconfig_path: Path to a kubeconfig file. When empty, the
                in-cluster service account is tried first, then the default
                kubeconfig location (KUBECONFIG or ~/.kube/config).

        Returns:
            A KubernetesService bound to a new CoreV1Api.

        Raises:
            KubernetesError: If no usable credentials can be loaded.
        """
        if kubeconfig_path:
            try:
                k8s_config.load_kube_config(config_file=kubeconfig_path)
            except Exception as exc:
                raise KubernetesError(
                    f"Could not load kubeconfig at '{kubeconfig_path}': {exc}"
                ) from exc
            logger.debug("Kubernetes: using kubeconfig at %s.", kubeconfig_path)
            return cls(k8s_client.CoreV1Api())

        try:
            k8s_config.load_incluster_config()
            logger.debug("Kubernetes: using in-cluster service account.")
        except k8s_config.ConfigException:
            # Not running inside a pod; fall back to the default kubeconfig.
            try:
                k8s_config.load_kube_config()
                logger.debug("Kubernetes: using default kubeconfig.")
            except Exception as exc:
                raise KubernetesError(
                    f"Could not load cluster credentials: no in-cluster service "
                    f"account and no default kubeconfig: {exc}"
                ) from exc

        return cls(k8s_client.CoreV1Api())

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def list_external_ips(self, label_selector: Mapping[str, str]) -> list[IPAddress]:
        """
        Returns the external IPs of all ready nodes matching the selector.

        Duplicates are kept as reported; unparsable addresses are logged and
        skipped.

        Args:
            label_selector: Exact-match label mapping; empty selects all nodes.

        Returns:
            A list of IPv4Address/IPv6Address instances.

        Raises:
            KubernetesError: If listing nodes fails. No partial result is returned.
        """
        selector = format_label_selector(label_selector)
        try:
            return await asyncio.to_thread(self._collect_external_ips, selector)
        except KubernetesError:
            raise
        except Exception as exc:
            raise KubernetesError(f"Failed to list nodes: {exc}") from exc

    # ---------------------------------------------------------------------------
    # Internal helpers (sync — run via asyncio.to_thread)
    # ---------------------------------------------------------------------------

    def _collect_external_ips(self, selector: str) -> list[IPAddress]:
        try:
            node_list = self._api.list_node(label_selector=selector)
        except ApiException as exc:
            raise KubernetesError(
                f"Failed to list nodes: Kubernetes API error {exc.status}: {exc.reason}"
            ) from exc

        addresses: list[IPAddress] = []
        for node in node_list.items:
            name = node.metadata.name if node.metadata else ""
            if not is_node_ready(node):
                logger.debug("Node %s is not ready — skipping.", name)
                continue

            for address in (node.status.addresses or []):
                if address.type != _EXTERNAL_IP:
                    continue
                try:
                    ip = ipaddress.ip_address(address.address.strip())
                except (ValueError, AttributeError):
                    logger.warning(
                        "Node %s reports an invalid external IP %r — skipping.", name, address.address
                    )
                    continue
                logger.info("Found external IP %s on node %s.", ip, name, extra={"node": name, "address": str(ip)})
                addresses.append(ip)

        logger.debug(
            "Node discovery (%s): %d address(es) from %d node(s).",
            selector or "all nodes",
            len(addresses),
            len(node_list.items),
        )
        return addresses
