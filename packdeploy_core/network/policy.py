"""Outbound and listener network policy."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Iterable, Union

from packdeploy_core.errors import NetworkDeniedError

logger = logging.getLogger(__name__)

_Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def normalize_host(target: str) -> str:
    """Reduce a URL, ``host:port`` or bare host to the host part."""
    value = target.strip()
    if "://" in value:
        value = value.split("://", 1)[1]
    value = value.split("/", 1)[0]
    value = value.rsplit("@", 1)[-1]
    if value.startswith("["):
        # [v6]:port
        return value[1:].split("]", 1)[0]
    if value.count(":") > 1:
        # bare IPv6 literal without brackets
        return value
    return value.split(":", 1)[0]


def _parse_network(value: str) -> _Network | None:
    try:
        return ipaddress.ip_network(value, strict=False)
    except ValueError:
        return None


@dataclass(frozen=True)
class NetAllowList:
    hosts: tuple[str, ...] = ()
    networks: tuple[_Network, ...] = ()

    @classmethod
    def parse(cls, raw: str | Iterable[str] | None) -> "NetAllowList":
        if raw is None:
            return cls()
        tokens = raw.split(",") if isinstance(raw, str) else [str(item) for item in raw]
        hosts: list[str] = []
        networks: list[_Network] = []
        for token in tokens:
            entry = token.strip()
            if not entry:
                continue
            network = _parse_network(entry)
            if network is not None:
                networks.append(network)
                continue
            host = normalize_host(entry)
            if not host:
                continue
            network = _parse_network(host)
            if network is not None:
                networks.append(network)
                continue
            hosts.append(host.lower())
        return cls(hosts=tuple(hosts), networks=tuple(networks))

    def is_empty(self) -> bool:
        return not self.hosts and not self.networks

    def is_allowed(self, target: str) -> bool:
        host = normalize_host(target)
        if host.lower() in self.hosts:
            return True
        try:
            address = ipaddress.ip_address(host)
        except ValueError:
            return False
        return any(address.version == net.version and address in net for net in self.networks)


@dataclass(frozen=True)
class NetworkPolicy:
    allow_network: bool = False
    offline_only: bool = False
    allowlist: NetAllowList = field(default_factory=NetAllowList)

    @property
    def allowlist_configured(self) -> bool:
        return not self.allowlist.is_empty()

    def enforce(self, target: str) -> None:
        if self.offline_only:
            raise NetworkDeniedError("offline-only mode blocks outbound network access")
        if not self.allow_network:
            raise NetworkDeniedError(
                "network access disabled; set allow_network to enable outbound calls"
            )
        if self.allowlist_configured and not self.allowlist.is_allowed(target):
            raise NetworkDeniedError(
                f"network target '{target}' not in allowlist; add it to net_allowlist to permit it"
            )
        logger.debug("network target permitted target=%s", target)
