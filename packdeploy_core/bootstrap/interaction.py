"""Interaction adapter registry and availability rules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from packdeploy_core.errors import ConfigError


class InteractionMode(str, Enum):
    CLI = "cli"
    JSON = "json"
    AUTO = "auto"
    HTTP = "http"
    MQTT = "mqtt"

    @classmethod
    def parse(cls, raw: str) -> "InteractionMode":
        try:
            return cls(str(raw).strip().lower())
        except ValueError as exc:
            choices = ", ".join(mode.value for mode in cls)
            raise ConfigError(f"unknown interaction mode '{raw}' (expected one of: {choices})") from exc


class InteractionAdapterKind(str, Enum):
    CLI = "cli"
    JSON = "json"
    HTTP = "http"
    MQTT = "mqtt"


@dataclass(frozen=True)
class InteractionPolicy:
    allow_listeners: bool = False
    allow_network: bool = False
    offline_only: bool = False
    allowlist_configured: bool = False


def adapter_available(kind: InteractionAdapterKind, policy: InteractionPolicy) -> bool:
    if kind in (InteractionAdapterKind.CLI, InteractionAdapterKind.JSON):
        return True
    listeners_ok = policy.allow_listeners and policy.allow_network and not policy.offline_only
    if kind is InteractionAdapterKind.HTTP:
        return listeners_ok
    return listeners_ok and policy.allowlist_configured


def adapters_for_mode(mode: InteractionMode, policy: InteractionPolicy) -> list[InteractionAdapterKind]:
    available = [kind for kind in InteractionAdapterKind if adapter_available(kind, policy)]
    if mode is InteractionMode.AUTO:
        return available
    return [kind for kind in available if kind.value == mode.value]
