"""Declarative installer output."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from packdeploy_core.errors import InvalidFlowError

OUTPUT_VERSION = "v1"


@dataclass(frozen=True)
class SecretWrite:
    key: str
    value: str | None = None
    scope: str | None = None
    metadata: Any = None

    @property
    def storage_key(self) -> str:
        return f"{self.scope}/{self.key}" if self.scope else self.key

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SecretWrite":
        key = str(payload.get("key") or "").strip()
        if not key:
            raise InvalidFlowError("secret write requires a key")
        value = payload.get("value")
        scope = payload.get("scope")
        return cls(
            key=key,
            value=str(value) if value is not None else None,
            scope=str(scope) if scope is not None else None,
            metadata=payload.get("metadata"),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"key": self.key}
        if self.value is not None:
            payload["value"] = self.value
        if self.scope is not None:
            payload["scope"] = self.scope
        if self.metadata is not None:
            payload["metadata"] = self.metadata
        return payload


@dataclass(frozen=True)
class BootstrapOutput:
    ready: bool
    output_version: str = OUTPUT_VERSION
    config_patch: Any = None
    secrets_writes: tuple[SecretWrite, ...] = ()
    warnings: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, payload: Any) -> "BootstrapOutput":
        if not isinstance(payload, Mapping):
            raise InvalidFlowError("invalid bootstrap output: expected an object")
        if "output_version" not in payload:
            raise InvalidFlowError("invalid bootstrap output: missing field 'output_version'")
        ready = payload.get("ready")
        if not isinstance(ready, bool):
            raise InvalidFlowError("invalid bootstrap output: 'ready' must be a boolean")
        writes = payload.get("secrets_writes") or []
        warnings = payload.get("warnings") or []
        if not isinstance(writes, list) or not all(isinstance(item, Mapping) for item in writes):
            raise InvalidFlowError("invalid bootstrap output: 'secrets_writes' must be a list of objects")
        if not isinstance(warnings, list):
            raise InvalidFlowError("invalid bootstrap output: 'warnings' must be a list")
        return cls(
            ready=ready,
            output_version=str(payload["output_version"]),
            config_patch=payload.get("config_patch"),
            secrets_writes=tuple(SecretWrite.from_dict(item) for item in writes),
            warnings=tuple(str(item) for item in warnings),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "output_version": self.output_version,
            "config_patch": self.config_patch,
            "secrets_writes": [item.to_dict() for item in self.secrets_writes],
            "warnings": list(self.warnings),
            "ready": self.ready,
        }

    def redacted(self) -> "BootstrapOutput":
        return replace(
            self,
            secrets_writes=tuple(replace(item, value=None) for item in self.secrets_writes),
        )
