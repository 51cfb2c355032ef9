"""Platform pack loading and verification.

The install/upgrade orchestrator lives in :mod:`packdeploy_core.platform.orchestrator`.
"""

from .flow import BootstrapResolution, resolve_bootstrap
from .manifest import BootstrapSpec, PackManifest, PackSignature, validate_pack_manifest
from .pack import PlatformPackInfo, flow_entry_name, load_bootstrap_flow, load_platform_pack, read_pack_entry
from .packaging import build_platform_pack
from .verify import VerificationOutcome, VerificationPolicy, verify_platform_pack

__all__ = [
    "BootstrapResolution",
    "BootstrapSpec",
    "PackManifest",
    "PackSignature",
    "PlatformPackInfo",
    "VerificationOutcome",
    "VerificationPolicy",
    "build_platform_pack",
    "flow_entry_name",
    "load_bootstrap_flow",
    "load_platform_pack",
    "read_pack_entry",
    "resolve_bootstrap",
    "validate_pack_manifest",
    "verify_platform_pack",
]
