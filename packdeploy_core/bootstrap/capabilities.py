"""Host capability report for the configured interaction mode."""

from __future__ import annotations

from dataclasses import dataclass, field

from packdeploy_core.network import NetworkPolicy

from .interaction import InteractionAdapterKind, InteractionMode, InteractionPolicy, adapters_for_mode


@dataclass(frozen=True)
class HostCapabilities:
    adapters: tuple[InteractionAdapterKind, ...]
    no_listeners: bool
    offline_only: bool
    disabled_reasons: tuple[str, ...] = field(default_factory=tuple)


def build_host_capabilities(
    mode: InteractionMode,
    allow_listeners: bool,
    network_policy: NetworkPolicy,
) -> HostCapabilities:
    effective_network = network_policy.allow_network and not network_policy.offline_only
    effective_listeners = allow_listeners and effective_network
    policy = InteractionPolicy(
        allow_listeners=effective_listeners,
        allow_network=effective_network,
        offline_only=network_policy.offline_only,
        allowlist_configured=network_policy.allowlist_configured,
    )

    reasons: list[str] = []
    if not allow_listeners:
        reasons.append("listeners not allowed (enable with allow_listeners)")
    if network_policy.offline_only:
        reasons.append("offline-only mode disables listener adapters")
    if not network_policy.allow_network:
        reasons.append("network access disabled; listener adapters require network")
    if network_policy.allow_network and not network_policy.allowlist_configured:
        reasons.append("network allowlist is empty; mqtt adapter remains disabled (set net_allowlist)")
    if not effective_listeners:
        reasons.append("http/mqtt adapters disabled by policy")

    return HostCapabilities(
        adapters=tuple(adapters_for_mode(mode, policy)),
        no_listeners=not effective_listeners,
        offline_only=network_policy.offline_only,
        disabled_reasons=tuple(reasons),
    )
