"""Platform pack manifest schema."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from packdeploy_core.errors import PackManifestError

PACK_MANIFEST_SCHEMA_VERSION = "pack-v1"


@dataclass(frozen=True)
class PackSignature:
    key_id: str
    signature: str


@dataclass(frozen=True)
class BootstrapSpec:
    install_flow: str | None = None
    upgrade_flow: str | None = None
    installer_component: str | None = None


@dataclass(frozen=True)
class PackManifest:
    pack_id: str
    version: str
    schema_version: str = PACK_MANIFEST_SCHEMA_VERSION
    kind: str = "application"
    publisher: str = ""
    flows: tuple[str, ...] = ()
    components: tuple[str, ...] = ()
    signatures: tuple[PackSignature, ...] = ()
    bootstrap: BootstrapSpec | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PackManifest":
        validate_pack_manifest(payload)
        bootstrap_node = payload.get("bootstrap")
        bootstrap = None
        if isinstance(bootstrap_node, Mapping):
            bootstrap = BootstrapSpec(
                install_flow=_string_or_none(bootstrap_node.get("install_flow")),
                upgrade_flow=_string_or_none(bootstrap_node.get("upgrade_flow")),
                installer_component=_string_or_none(bootstrap_node.get("installer_component")),
            )
        return cls(
            pack_id=str(payload["pack_id"]).strip(),
            version=str(payload["version"]).strip(),
            schema_version=str(payload.get("schema_version") or PACK_MANIFEST_SCHEMA_VERSION),
            kind=str(payload.get("kind") or "application"),
            publisher=str(payload.get("publisher") or ""),
            flows=tuple(_entry_id(item) for item in payload.get("flows") or []),
            components=tuple(_entry_id(item) for item in payload.get("components") or []),
            signatures=tuple(
                PackSignature(key_id=str(item.get("key_id") or ""), signature=str(item.get("signature") or ""))
                for item in payload.get("signatures") or []
            ),
            bootstrap=bootstrap,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "schema_version": self.schema_version,
            "pack_id": self.pack_id,
            "version": self.version,
            "kind": self.kind,
            "publisher": self.publisher,
            "flows": [{"id": flow_id} for flow_id in self.flows],
            "components": [{"id": component_id} for component_id in self.components],
            "signatures": [{"key_id": sig.key_id, "signature": sig.signature} for sig in self.signatures],
        }
        if self.bootstrap is not None:
            payload["bootstrap"] = {
                key: value
                for key, value in (
                    ("install_flow", self.bootstrap.install_flow),
                    ("upgrade_flow", self.bootstrap.upgrade_flow),
                    ("installer_component", self.bootstrap.installer_component),
                )
                if value is not None
            }
        return payload


def validate_pack_manifest(payload: Mapping[str, Any]) -> None:
    if not isinstance(payload, Mapping):
        raise PackManifestError("pack manifest must be an object")
    if not str(payload.get("pack_id") or "").strip():
        raise PackManifestError("manifest.pack_id is required")
    if not str(payload.get("version") or "").strip():
        raise PackManifestError("manifest.version is required")
    for section in ("flows", "components", "signatures"):
        node = payload.get(section)
        if node is not None and not isinstance(node, list):
            raise PackManifestError(f"manifest.{section} must be a list")
    for item in payload.get("flows") or []:
        if not _entry_id(item):
            raise PackManifestError("manifest.flows[].id is required")
    for item in payload.get("signatures") or []:
        if not isinstance(item, Mapping):
            raise PackManifestError("manifest.signatures entries must be objects")
    bootstrap = payload.get("bootstrap")
    if bootstrap is not None and not isinstance(bootstrap, Mapping):
        raise PackManifestError("manifest.bootstrap must be an object")


def _entry_id(item: Any) -> str:
    if isinstance(item, Mapping):
        return str(item.get("id") or "").strip()
    return str(item or "").strip()


def _string_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
