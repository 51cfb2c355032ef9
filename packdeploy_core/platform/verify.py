"""Signature presence policy for platform packs.

Only presence and non-emptiness are checked here; cryptographic validation
belongs to the signing toolchain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from packdeploy_core.errors import PackVerificationError

from .pack import PlatformPackInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationPolicy:
    verify: bool = True
    strict: bool = False


@dataclass(frozen=True)
class VerificationOutcome:
    warnings: tuple[str, ...] = field(default_factory=tuple)


def verify_platform_pack(info: PlatformPackInfo, policy: VerificationPolicy) -> VerificationOutcome:
    if not policy.verify:
        return VerificationOutcome(warnings=("verification skipped (verify=false)",))

    warnings: list[str] = []
    signatures = info.manifest.signatures
    if not signatures:
        message = "pack missing signatures"
        if policy.strict:
            raise PackVerificationError(f"{message}; set verify=false to bypass")
        warnings.append(message)
    for sig in signatures:
        if not sig.signature.strip():
            raise PackVerificationError(f"invalid signature for key_id={sig.key_id} (empty payload)")

    for warning in warnings:
        logger.warning("%s pack=%s", warning, info.manifest.pack_id)
    return VerificationOutcome(warnings=tuple(warnings))
