"""Bootstrap flow name resolution from pack manifests."""

from __future__ import annotations

from dataclasses import dataclass

from packdeploy_core.errors import BootstrapResolutionError

from .manifest import PackManifest

DEFAULT_INSTALL_FLOW = "platform_install"
DEFAULT_UPGRADE_FLOW = "platform_upgrade"
DEFAULT_INSTALLER_COMPONENT = "installer"


@dataclass(frozen=True)
class BootstrapResolution:
    install_flow: str
    upgrade_flow: str
    installer_component: str


def resolve_bootstrap(manifest: PackManifest) -> BootstrapResolution:
    bootstrap = manifest.bootstrap
    install = (bootstrap.install_flow if bootstrap else None) or DEFAULT_INSTALL_FLOW
    upgrade = (bootstrap.upgrade_flow if bootstrap else None) or DEFAULT_UPGRADE_FLOW
    installer = (bootstrap.installer_component if bootstrap else None) or DEFAULT_INSTALLER_COMPONENT

    _ensure_flow_exists(install, manifest)
    _ensure_flow_exists(upgrade, manifest)
    return BootstrapResolution(install_flow=install, upgrade_flow=upgrade, installer_component=installer)


def _ensure_flow_exists(flow_id: str, manifest: PackManifest) -> None:
    if flow_id in manifest.flows:
        return
    raise BootstrapResolutionError(
        f"bootstrap flow '{flow_id}' not found in manifest (flows: {list(manifest.flows)})"
    )
