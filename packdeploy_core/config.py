"""Workspace configuration for platform install/upgrade runs.

Settings live in ``<workspace>/config/config.toml``::

    [platform]
    pack = "oci://registry.example.com/platform/core:1.2.0"
    state_path = "state/bootstrap_state.json"
    secrets_backend = "file:state/secrets.json"
    verify = true

    [network]
    allow_network = true
    net_allowlist = ["registry.example.com", "10.0.0.0/8"]

    [interaction]
    mode = "json"
    answers_path = "answers.yaml"
"""

from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from packdeploy_core.bootstrap.interaction import InteractionMode
from packdeploy_core.bootstrap.state import StateBackend
from packdeploy_core.errors import ConfigError
from packdeploy_core.network import NetAllowList, NetworkPolicy
from packdeploy_core.platform.verify import VerificationPolicy

logger = logging.getLogger(__name__)

CONFIG_RELATIVE_PATH = Path("config") / "config.toml"
DEFAULT_STATE_PATH = Path("state") / "bootstrap_state.json"
DEFAULT_SECRETS_FILE = Path("state") / "secrets.json"
DEFAULT_HTTP_BIND = "127.0.0.1:0"


@dataclass(frozen=True)
class PlatformConfig:
    pack: str | None = None
    state_path: Path = DEFAULT_STATE_PATH
    config_patch_path: Path | None = None
    secrets_backend: str = f"file:{DEFAULT_SECRETS_FILE.as_posix()}"
    state_backend: StateBackend = StateBackend.FILE
    interaction: InteractionMode = InteractionMode.CLI
    answers: Mapping[str, Any] | None = None
    http_bind: str = DEFAULT_HTTP_BIND
    http_timeout: float = 300.0
    mqtt_broker_host: str = "localhost"
    mqtt_device_id: str = "device"
    mqtt_topic_prefix: str = "packdeploy/bootstrap"
    mqtt_timeout: float = 300.0
    allow_listeners: bool = False
    allow_network: bool = False
    offline_only: bool = False
    net_allowlist: tuple[str, ...] = field(default_factory=tuple)
    verify: bool = True
    strict: bool = False
    cache_dir: Path | None = None
    environment_kind: str | None = None

    def network_policy(self) -> NetworkPolicy:
        return NetworkPolicy(
            allow_network=self.allow_network,
            offline_only=self.offline_only,
            allowlist=NetAllowList.parse(self.net_allowlist),
        )

    def verification_policy(self) -> VerificationPolicy:
        return VerificationPolicy(verify=self.verify, strict=self.strict)


def _read_config(workspace_root: Path) -> dict[str, Any]:
    config_path = workspace_root / CONFIG_RELATIVE_PATH
    if not config_path.exists():
        return {}
    try:
        return tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid config file {config_path}: {exc}") from exc


def _section(payload: Mapping[str, Any], name: str) -> dict[str, Any]:
    section = payload.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"config section [{name}] must be a table")
    return section


def _string_or_none(value: Any) -> str | None:
    if value is None:
        return None
    data = str(value).strip()
    return data if data else None


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigError(f"config key '{key}' must be a boolean")


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"config key '{key}' must be a number") from exc


def _resolve_path(workspace_root: Path, raw: Any) -> Path:
    path = Path(str(raw)).expanduser()
    return path if path.is_absolute() else workspace_root / path


def _resolve_backend(workspace_root: Path, raw: str) -> str:
    # relative file backends are anchored to the workspace
    if raw.startswith("file:"):
        target = raw[len("file:") :]
        if target:
            return f"file:{_resolve_path(workspace_root, target)}"
    return raw


def load_answers_file(path: Path) -> Mapping[str, Any]:
    """Read pre-supplied answers from a JSON or YAML document."""
    if not path.exists():
        raise ConfigError(f"answers file {path} does not exist")
    content = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            payload = json.loads(content)
        else:
            payload = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"invalid answers file {path}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ConfigError("answers JSON must be an object")
    return payload


def _allowlist_entries(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, list):
        items = [str(item) for item in raw]
    else:
        raise ConfigError("config key 'net_allowlist' must be a string or a list")
    return tuple(item.strip() for item in items if item.strip())


def load_platform_config(workspace_root: Path) -> PlatformConfig:
    workspace_root = Path(workspace_root)
    payload = _read_config(workspace_root)
    platform = _section(payload, "platform")
    network = _section(payload, "network")
    interaction = _section(payload, "interaction")
    defaults = PlatformConfig()

    pack = _string_or_none(platform.get("pack"))
    if pack is not None and not pack.startswith("oci://"):
        pack = str(_resolve_path(workspace_root, pack))

    state_path = _resolve_path(workspace_root, platform.get("state_path", DEFAULT_STATE_PATH))
    config_patch_raw = _string_or_none(platform.get("config_patch_path"))
    cache_raw = _string_or_none(platform.get("cache_dir"))
    secrets_raw = _string_or_none(platform.get("secrets_backend")) or defaults.secrets_backend

    answers: Mapping[str, Any] | None = None
    if "answers" in interaction:
        answers = interaction["answers"]
        if not isinstance(answers, Mapping):
            raise ConfigError("answers JSON must be an object")
    answers_path = _string_or_none(interaction.get("answers_path"))
    if answers_path is not None:
        answers = load_answers_file(_resolve_path(workspace_root, answers_path))

    config = PlatformConfig(
        pack=pack,
        state_path=state_path,
        config_patch_path=_resolve_path(workspace_root, config_patch_raw) if config_patch_raw else None,
        secrets_backend=_resolve_backend(workspace_root, secrets_raw),
        state_backend=StateBackend.parse(platform.get("state_backend", defaults.state_backend.value)),
        interaction=InteractionMode.parse(interaction.get("mode", defaults.interaction.value)),
        answers=answers,
        http_bind=str(interaction.get("http_bind", defaults.http_bind)),
        http_timeout=_as_float(interaction.get("http_timeout", defaults.http_timeout), "http_timeout"),
        mqtt_broker_host=str(interaction.get("mqtt_broker_host", defaults.mqtt_broker_host)),
        mqtt_device_id=str(interaction.get("mqtt_device_id", defaults.mqtt_device_id)),
        mqtt_topic_prefix=str(interaction.get("mqtt_topic_prefix", defaults.mqtt_topic_prefix)),
        mqtt_timeout=_as_float(interaction.get("mqtt_timeout", defaults.mqtt_timeout), "mqtt_timeout"),
        allow_listeners=_as_bool(interaction.get("allow_listeners", False), "allow_listeners"),
        allow_network=_as_bool(network.get("allow_network", False), "allow_network"),
        offline_only=_as_bool(network.get("offline_only", False), "offline_only"),
        net_allowlist=_allowlist_entries(network.get("net_allowlist")),
        verify=_as_bool(platform.get("verify", True), "verify"),
        strict=_as_bool(platform.get("strict", False), "strict"),
        cache_dir=_resolve_path(workspace_root, cache_raw) if cache_raw else None,
        environment_kind=_string_or_none(platform.get("environment_kind")),
    )
    logger.debug("loaded platform config workspace=%s mode=%s", workspace_root, config.interaction.value)
    return config
