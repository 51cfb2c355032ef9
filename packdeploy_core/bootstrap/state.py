"""Durable record of the installed platform pack."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

from packdeploy_core.errors import (
    ConfigError,
    MissingVersionError,
    NotInstalledError,
    NotNewerError,
    PackManifestError,
    StateBackendUnavailableError,
    StateFormatError,
)
from packdeploy_core.versioning import SemVer, parse_semver

logger = logging.getLogger(__name__)


def _now_ts() -> int:
    return int(time.time())


@dataclass(frozen=True)
class BootstrapState:
    version: str | None = None
    digest: str | None = None
    installed_at: int | None = None
    environment_kind: str | None = None
    last_upgrade_at: int | None = None
    rollback_ref: str | None = None

    @classmethod
    def installed_now(
        cls,
        version: str | None,
        digest: str | None,
        environment_kind: str | None = None,
    ) -> "BootstrapState":
        return cls(version=version, digest=digest, installed_at=_now_ts(), environment_kind=environment_kind)

    @classmethod
    def upgraded_from(
        cls,
        current: "BootstrapState",
        version: str | None,
        digest: str | None,
        rollback_ref: str | None,
    ) -> "BootstrapState":
        now = _now_ts()
        return cls(
            version=version,
            digest=digest,
            installed_at=current.installed_at if current.installed_at is not None else now,
            environment_kind=current.environment_kind,
            last_upgrade_at=now,
            rollback_ref=rollback_ref,
        )

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "BootstrapState":
        known = {item.name for item in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def rollback_reference(self) -> str:
        return f"{self.version or 'unknown'}@{self.digest or 'unknown'}"


class StateBackend(str, Enum):
    FILE = "file"
    K8S = "k8s"

    @classmethod
    def parse(cls, raw: str) -> "StateBackend":
        try:
            return cls(str(raw).strip().lower())
        except ValueError as exc:
            raise ConfigError(f"unknown bootstrap state backend '{raw}' (expected file or k8s)") from exc


def load_state(path: Path) -> BootstrapState | None:
    path = Path(path)
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise StateFormatError(f"bootstrap state {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise StateFormatError(f"bootstrap state {path} must be a JSON object")
    try:
        return BootstrapState.from_dict(payload)
    except TypeError as exc:
        raise StateFormatError(f"bootstrap state {path} is malformed: {exc}") from exc


def save_state(path: Path, state: BootstrapState) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
    logger.info("saved bootstrap state path=%s version=%s", path, state.version)


def load_state_backend(backend: StateBackend, path: Path) -> BootstrapState | None:
    if backend is StateBackend.FILE:
        return load_state(path)
    raise StateBackendUnavailableError("k8s bootstrap state backend not available in this build")


def save_state_backend(backend: StateBackend, path: Path, state: BootstrapState) -> None:
    if backend is StateBackend.FILE:
        save_state(path, state)
        return
    raise StateBackendUnavailableError("k8s bootstrap state backend not available in this build")


def ensure_upgrade_allowed(state: BootstrapState | None, target_version: str | SemVer) -> BootstrapState:
    if state is None:
        raise NotInstalledError()
    if not isinstance(state.version, str) or not state.version.strip():
        raise MissingVersionError("bootstrap state missing version; reinstall required")
    try:
        current = parse_semver(state.version)
    except ValueError as exc:
        raise MissingVersionError(f"invalid version in state: {exc}") from exc
    try:
        target = target_version if isinstance(target_version, SemVer) else parse_semver(target_version)
    except ValueError as exc:
        raise PackManifestError(f"invalid pack version: {exc}") from exc
    if target <= current:
        raise NotNewerError(str(current), str(target))
    return state
