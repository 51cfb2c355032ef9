"""Helpers for assembling platform pack archives."""

from __future__ import annotations

import io
import json
import tarfile
from pathlib import Path
from typing import Any, Mapping

from .manifest import PackManifest, validate_pack_manifest
from .pack import flow_entry_name

PACK_SUFFIX = ".gtpack"


def _add_bytes(archive: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(data)
    info.mode = 0o644
    archive.addfile(info, io.BytesIO(data))


def _flow_bytes(document: Any) -> bytes:
    if isinstance(document, bytes):
        return document
    if isinstance(document, str):
        return document.encode("utf-8")
    return json.dumps(document, ensure_ascii=False, indent=2).encode("utf-8")


def build_platform_pack(
    output_path: Path,
    manifest: PackManifest | Mapping[str, Any],
    flows: Mapping[str, Any],
    *,
    components: Mapping[str, bytes] | None = None,
    compress: bool = False,
) -> Path:
    """Write a pack archive holding ``manifest.json``, flows and component blobs.

    ``flows`` maps flow ids to a decoded document, JSON/YAML text, or raw bytes.
    Flow ids missing from the manifest's flow list are appended to it.
    """
    payload = manifest.to_dict() if isinstance(manifest, PackManifest) else dict(manifest)
    validate_pack_manifest(payload)
    declared = [item.get("id") if isinstance(item, Mapping) else item for item in payload.get("flows") or []]
    for flow_id in flows:
        if flow_id not in declared:
            declared.append(flow_id)
    payload["flows"] = [{"id": flow_id} for flow_id in declared]

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    mode = "w:gz" if compress else "w"
    with tarfile.open(output_path, mode) as archive:
        _add_bytes(
            archive,
            "manifest.json",
            json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode("utf-8"),
        )
        for flow_id, document in flows.items():
            _add_bytes(archive, flow_entry_name(flow_id), _flow_bytes(document))
        for name, data in (components or {}).items():
            _add_bytes(archive, f"components/{name}", data)
    return output_path
