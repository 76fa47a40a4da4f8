"""
config.py

Responsibility: Resolves the application settings from layered sources
(defaults < YAML file < APP_* environment < command-line flags) into one
immutable Settings object, and defines the DnsTarget value object.
Does NOT: configure logging, build clients, or run any sync logic.
"""

from __future__ import annotations

import argparse
import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import tldextract
import yaml

from exceptions import ConfigLoadError
from providers.dns_provider import normalize_name, to_absolute_name

ENV_PREFIX = "APP_"

SUPPORTED_PROVIDERS = ("cloudflare", "digitalocean", "linode")
LOG_FORMATS = ("", "json", "logfmt")

_DEFAULTS: dict[str, Any] = {
    "dns.provider": "",
    "dns.token": "",
    "dns.hostname": "",
    "dns.zone": "",
    "dns.ttl": 0,
    "dns.targets": [],
    "node.labels": "",
    "kubeconfig": "",
    "watch.interval": "1m",
    "log.format": "",
    "log.level": "INFO",
}

# Keys whose values are mappings in the YAML file and must not be flattened:
# label keys such as "node-role.kubernetes.io/edge" contain dots themselves.
_MAPPING_KEYS = frozenset({"node.labels"})

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

# NOTE: suffix_list_urls=() uses the bundled public suffix snapshot, so zone
# detection never reaches out to the network at startup.
_extract_domain = tldextract.TLDExtract(suffix_list_urls=())


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DnsTarget:
    """
    One hostname kept in sync with the external IPs of a set of nodes.

    Attributes:
        hostname: Fully-qualified record name, lower-case, no trailing dot.
        zone: DNS zone the provider operates on, e.g. "example.com".
        label_selector: Exact-match node labels, AND-combined; empty = all nodes.
        ttl: TTL in seconds for created records; 0 = provider default.
    """

    hostname: str
    zone: str
    label_selector: dict[str, str] = field(default_factory=dict)
    ttl: int = 0


@dataclass(frozen=True)
class Settings:
    """Fully resolved, validated configuration for one process lifetime."""

    provider: str
    token: str = field(repr=False)
    targets: tuple[DnsTarget, ...]
    interval: float
    kubeconfig: str = ""
    log_format: str = ""
    log_level: str = "INFO"
    config_path: str = ""


# ---------------------------------------------------------------------------
# Command-line flags
# ---------------------------------------------------------------------------


def build_arg_parser() -> argparse.ArgumentParser:
    """
    Builds the CLI parser. Setting flags use dotted destinations matching the
    configuration keys and default to SUPPRESS, so only flags the user passed
    show up and override the lower layers.
    """
    parser = argparse.ArgumentParser(
        prog="kube-dns-sync",
        description="Keep DNS address records in sync with the external IPs of ready Kubernetes nodes.",
        argument_default=argparse.SUPPRESS,
    )
    parser.add_argument("--config", dest="config", help="Path to a YAML config file (env: APP_CONFIG)")
    parser.add_argument("--dns-provider", dest="dns.provider", help="DNS provider (cloudflare, digitalocean, linode)")
    parser.add_argument("--dns-hostname", dest="dns.hostname", help="DNS hostname to manage")
    parser.add_argument("--dns-zone", dest="dns.zone", help="DNS zone (defaults to the hostname's registrable domain)")
    parser.add_argument("--dns-ttl", dest="dns.ttl", help="TTL for created records, e.g. 300 or 5m (0 = provider default)")
    parser.add_argument("--dns-token", dest="dns.token", help="DNS provider API token")
    parser.add_argument("--kubeconfig", dest="kubeconfig", help="Path to the kubeconfig file")
    parser.add_argument("--watch-interval", dest="watch.interval", help="Interval between sync passes, e.g. 1m (default: 1m)")
    parser.add_argument("--node-labels", dest="node.labels", help="Node label selector, e.g. role=edge,zone=a")
    parser.add_argument("--log-format", dest="log.format", help="Log format (logfmt, json; default: auto)")
    parser.add_argument("--log-level", dest="log.level", help="Log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--once", dest="once", action="store_true", help="Run a single sync pass and exit")
    parser.add_argument("--version", dest="version", action="store_true", help="Print version information and exit")
    return parser


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------


def parse_duration(value: Any, key: str = "duration") -> float:
    """
    Parses a duration given as seconds (int/float/digits) or a Go-style
    string such as "90s", "5m" or "1h30m".

    Returns:
        The duration in seconds.

    Raises:
        ConfigLoadError: If the value cannot be parsed.
    """
    if isinstance(value, bool):
        raise ConfigLoadError(f"{key}: invalid duration {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip().lower()
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(text):
        raise ConfigLoadError(f"{key}: invalid duration {value!r}")
    return total


def parse_label_selector(value: Any, key: str = "node.labels") -> dict[str, str]:
    """
    Parses an exact-match label selector.

    Accepts a mapping (from YAML) or a string "k1=v1,k2=v2" ("==" also
    accepted). None and "" mean "all nodes".

    Raises:
        ConfigLoadError: On set-based or otherwise malformed selectors.
    """
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return {str(k).strip(): "" if v is None else str(v).strip() for k, v in value.items()}

    selector: dict[str, str] = {}
    for raw_item in str(value).split(","):
        item = raw_item.strip()
        if not item:
            continue
        label, sep, label_value = item.replace("==", "=").partition("=")
        label = label.strip()
        if not sep or not label or label.endswith("!"):
            raise ConfigLoadError(f"{key}: expected key=value pairs, got {item!r}")
        selector[label] = label_value.strip()
    return selector


def _parse_ttl(value: Any, key: str) -> int:
    ttl = parse_duration(value if value is not None else 0, key)
    if ttl < 0:
        raise ConfigLoadError(f"{key}: must not be negative")
    return int(ttl)


def _default_zone(hostname: str) -> str:
    ext = _extract_domain(hostname)
    if not ext.domain or not ext.suffix:
        return ""
    return f"{ext.domain}.{ext.suffix}"


# ---------------------------------------------------------------------------
# Layer loaders
# ---------------------------------------------------------------------------


def _flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for raw_key, value in data.items():
        key = f"{prefix}{str(raw_key).strip().lower().replace('_', '.').replace('-', '.')}"
        if isinstance(value, Mapping) and key not in _MAPPING_KEYS:
            flat.update(_flatten(value, prefix=f"{key}."))
        else:
            flat[key] = value
    return flat


def load_file_layer(path: str) -> dict[str, Any]:
    """
    Reads a YAML config file and flattens it into dotted keys.

    Raises:
        ConfigLoadError: If the file is missing, unreadable, not valid YAML,
            or not a mapping at the top level.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file '{path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML in config file '{path}': {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigLoadError(f"Config file '{path}' must contain a mapping at the top level")
    return _flatten(data)


def load_env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    """Maps APP_DNS_PROVIDER=x to {"dns.provider": "x"}."""
    layer: dict[str, Any] = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX) or name == f"{ENV_PREFIX}CONFIG":
            continue
        key = name[len(ENV_PREFIX):].lower().replace("_", ".")
        if key:
            layer[key] = value
    return layer


def load_flag_layer(flags: Mapping[str, Any]) -> dict[str, Any]:
    """Maps explicitly passed flags (dotted destinations) to config keys."""
    return {key: value for key, value in flags.items() if "." in key or key == "kubeconfig"}


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _build_target(entry: Mapping[str, Any], merged: Mapping[str, Any], index: int) -> DnsTarget:
    key = f"dns.targets[{index}]"
    hostname = normalize_name(str(entry.get("hostname") or ""))
    if not hostname:
        raise ConfigLoadError(f"{key}: hostname is required")

    zone = normalize_name(str(entry.get("zone") or merged.get("dns.zone") or ""))
    if zone:
        hostname = to_absolute_name(hostname, zone)
    else:
        zone = _default_zone(hostname)
        if not zone:
            raise ConfigLoadError(f"{key}: cannot determine the zone for {hostname!r}; set it explicitly")

    labels = entry["node_labels"] if "node_labels" in entry else merged.get("node.labels")
    ttl = entry["ttl"] if "ttl" in entry else merged.get("dns.ttl")

    return DnsTarget(
        hostname=hostname,
        zone=zone,
        label_selector=parse_label_selector(labels, f"{key}.node_labels"),
        ttl=_parse_ttl(ttl, f"{key}.ttl"),
    )


def _build_targets(merged: Mapping[str, Any]) -> tuple[DnsTarget, ...]:
    entries = merged.get("dns.targets") or []
    hostname = str(merged.get("dns.hostname") or "").strip()

    if entries and hostname:
        raise ConfigLoadError("dns.hostname and dns.targets are mutually exclusive")
    if not isinstance(entries, list):
        raise ConfigLoadError("dns.targets must be a list")

    if not entries:
        if not hostname:
            raise ConfigLoadError("No DNS target configured: set dns.hostname or dns.targets")
        entries = [{"hostname": hostname}]

    targets: list[DnsTarget] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            raise ConfigLoadError(f"dns.targets[{index}] must be a mapping")
        target = _build_target(entry, merged, index)
        if target.hostname in seen:
            raise ConfigLoadError(f"dns.targets[{index}]: duplicate hostname {target.hostname!r}")
        seen.add(target.hostname)
        targets.append(target)
    return tuple(targets)


def load_settings(
    flags: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """
    Resolves and validates the layered configuration.

    Args:
        flags: Flags explicitly passed on the command line, keyed by their
            dotted destination (see build_arg_parser()).
        environ: Environment mapping; defaults to os.environ.

    Returns:
        The immutable Settings.

    Raises:
        ConfigLoadError: On any missing or invalid value.
    """
    flags = flags or {}
    environ = os.environ if environ is None else environ

    config_path = str(flags.get("config") or environ.get(f"{ENV_PREFIX}CONFIG") or "")

    merged: dict[str, Any] = dict(_DEFAULTS)
    if config_path:
        merged.update(load_file_layer(config_path))
    merged.update(load_env_layer(environ))
    merged.update(load_flag_layer(flags))

    provider = str(merged.get("dns.provider") or "").strip().lower()
    if not provider:
        raise ConfigLoadError("dns.provider is required")
    if provider not in SUPPORTED_PROVIDERS:
        raise ConfigLoadError(
            f"Unsupported DNS provider: {provider!r}. Supported providers: {', '.join(SUPPORTED_PROVIDERS)}"
        )

    token = str(merged.get("dns.token") or "").strip()
    if not token:
        raise ConfigLoadError("dns.token is required")

    interval = parse_duration(merged.get("watch.interval"), "watch.interval")
    if interval <= 0:
        raise ConfigLoadError("watch.interval must be greater than zero")

    log_format = str(merged.get("log.format") or "").strip().lower()
    if log_format not in LOG_FORMATS:
        raise ConfigLoadError(f"Invalid log format: {log_format!r} (expected logfmt or json)")

    log_level = str(merged.get("log.level") or "INFO").strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigLoadError(f"Invalid log level: {log_level!r}")

    return Settings(
        provider=provider,
        token=token,
        targets=_build_targets(merged),
        interval=interval,
        kubeconfig=str(merged.get("kubeconfig") or "").strip(),
        log_format=log_format,
        log_level=log_level,
        config_path=config_path,
    )
