"""
dependencies.py

Responsibility: Builds the application's collaborators from resolved
Settings — the DNS provider adapter, the Kubernetes service and the
sync scheduler that ties them together.
Does NOT: contain business logic, read configuration sources, or run the loop.
"""

from __future__ import annotations

import httpx

from config import Settings
from exceptions import ConfigLoadError
from providers.cloudflare_client import CloudflareClient
from providers.digitalocean_client import DigitalOceanClient
from providers.dns_provider import DNSProvider
from providers.linode_client import LinodeClient
from scheduler import SyncScheduler
from services.dns_service import DnsService
from services.kubernetes_service import KubernetesService

_PROVIDERS = {
    "cloudflare": CloudflareClient,
    "digitalocean": DigitalOceanClient,
    "linode": LinodeClient,
}


def create_dns_provider(provider: str, api_token: str, http_client: httpx.AsyncClient) -> DNSProvider:
    """
    Returns the DNSProvider adapter for a provider name.

    Args:
        provider: One of "cloudflare", "digitalocean", "linode".
        api_token: The provider API token.
        http_client: The shared httpx.AsyncClient.

    Raises:
        ConfigLoadError: If the provider name is not supported.
    """
    try:
        provider_cls = _PROVIDERS[provider]
    except KeyError:
        raise ConfigLoadError(
            f"Unsupported DNS provider: {provider!r}. Supported providers: {', '.join(_PROVIDERS)}"
        ) from None
    return provider_cls(http_client=http_client, api_token=api_token)


def create_kubernetes_service(settings: Settings) -> KubernetesService:
    """
    Loads cluster credentials for the configured kubeconfig.

    Raises:
        KubernetesError: If no usable credentials are found.
    """
    return KubernetesService.from_kubeconfig(settings.kubeconfig)


def create_scheduler(
    settings: Settings,
    kubernetes_service: KubernetesService,
    http_client: httpx.AsyncClient,
) -> SyncScheduler:
    """
    Wires the provider, reconciler and collector into a SyncScheduler.
    """
    dns_provider = create_dns_provider(settings.provider, settings.token, http_client)
    return SyncScheduler(
        targets=settings.targets,
        collector=kubernetes_service,
        reconciler=DnsService(dns_provider),
        interval=settings.interval,
    )
