"""Secret stores written by bootstrap installers.

Two backends share one contract: ``snapshot()`` captures the current stored
document, ``write(writes)`` applies the installer's writes and
``restore(snapshot)`` puts the captured document back (or removes the file
when nothing existed before).
"""

from __future__ import annotations

import base64
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, Sequence

import yaml

from packdeploy_core.errors import ConfigError, MissingValueError, SecretsBackendError

from .output import SecretWrite

logger = logging.getLogger(__name__)

K8S_SECRET_DIR_ENV = "PACKDEPLOY_K8S_SECRET_DIR"
MANAGED_BY = "packdeploy"


@dataclass(frozen=True)
class SecretsSnapshot:
    target: Path
    existed: bool
    content: bytes | None = None


class SecretsBackend(Protocol):
    def snapshot(self) -> SecretsSnapshot: ...

    def write(self, writes: Sequence[SecretWrite]) -> None: ...

    def restore(self, snapshot: SecretsSnapshot) -> None: ...


def _require_values(writes: Sequence[SecretWrite]) -> None:
    for write in writes:
        if write.value is None:
            raise MissingValueError(write.key)


def _snapshot_file(path: Path) -> SecretsSnapshot:
    if path.exists():
        return SecretsSnapshot(target=path, existed=True, content=path.read_bytes())
    return SecretsSnapshot(target=path, existed=False)


def _restore_file(path: Path, snapshot: SecretsSnapshot) -> None:
    if snapshot.existed:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(snapshot.content or b"")
    elif path.exists():
        path.unlink()


class FileSecretsBackend:
    """JSON object keyed by ``scope/key``; new writes merge into existing ones."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def snapshot(self) -> SecretsSnapshot:
        return _snapshot_file(self.path)

    def write(self, writes: Sequence[SecretWrite]) -> None:
        if not writes:
            return
        _require_values(writes)
        store = self._read_store()
        for write in writes:
            record: dict[str, Any] = {"value": write.value}
            if write.scope is not None:
                record["scope"] = write.scope
            if write.metadata is not None:
                record["metadata"] = write.metadata
            store[write.storage_key] = record
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(store, indent=2, sort_keys=True), encoding="utf-8")
        logger.info("wrote %s secret(s) to %s keys=%s", len(writes), self.path, [w.storage_key for w in writes])

    def restore(self, snapshot: SecretsSnapshot) -> None:
        _restore_file(self.path, snapshot)

    def _read_store(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        content = self.path.read_text(encoding="utf-8")
        if not content.strip():
            return {}
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise SecretsBackendError(f"secrets file {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise SecretsBackendError(f"secrets file {self.path} must hold a JSON object")
        return payload


class ConfigMapSecretsBackend:
    """Stub cluster backend rendering a minimal ``v1/Secret`` document to disk."""

    def __init__(self, namespace: str, name: str, output_dir: Path | None = None) -> None:
        self.namespace = namespace
        self.name = name
        self.output_dir = output_dir

    @property
    def path(self) -> Path:
        base = self.output_dir or Path(
            os.environ.get(K8S_SECRET_DIR_ENV) or Path(tempfile.gettempdir()) / "packdeploy-k8s-secrets"
        )
        return Path(base) / self.namespace / f"{self.name}.yaml"

    def snapshot(self) -> SecretsSnapshot:
        return _snapshot_file(self.path)

    def write(self, writes: Sequence[SecretWrite]) -> None:
        if not writes:
            return
        _require_values(writes)
        data = {
            write.storage_key: base64.b64encode(str(write.value).encode("utf-8")).decode("ascii")
            for write in writes
        }
        manifest = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "annotations": {"managed-by": MANAGED_BY},
            },
            "type": "Opaque",
            "data": data,
        }
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(manifest, sort_keys=False), encoding="utf-8")
        logger.info("rendered secret %s/%s keys=%s", self.namespace, self.name, sorted(data))

    def restore(self, snapshot: SecretsSnapshot) -> None:
        _restore_file(self.path, snapshot)


def parse_backend(raw: str, *, k8s_output_dir: Path | None = None) -> FileSecretsBackend | ConfigMapSecretsBackend:
    value = raw.strip()
    if value.startswith("file:"):
        path = value[len("file:") :]
        if not path:
            raise ConfigError("file secrets backend requires a path")
        return FileSecretsBackend(Path(path))

    if value.startswith("k8s:"):
        rest = value[len("k8s:") :]
        if "/" in rest:
            namespace, name = rest.split("/", 1)
            if not namespace:
                raise ConfigError("k8s backend missing namespace")
            if not name:
                raise ConfigError("k8s backend missing secret name")
            return ConfigMapSecretsBackend(namespace, name, k8s_output_dir)
        if "=" in rest:
            fields: dict[str, str] = {}
            for part in rest.split(","):
                key, sep, item = part.partition("=")
                if sep:
                    fields[key.strip()] = item.strip()
            if not fields.get("namespace"):
                raise ConfigError("k8s backend requires namespace=<ns>")
            if not fields.get("name"):
                raise ConfigError("k8s backend requires name=<secret>")
            return ConfigMapSecretsBackend(fields["namespace"], fields["name"], k8s_output_dir)
        raise ConfigError("k8s backend expects k8s:<namespace>/<name> or k8s:namespace=...,name=...")

    raise ConfigError(f"unsupported secrets backend: {raw}")
