"""Local platform pack archives."""

from __future__ import annotations

import json
import logging
import tarfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import yaml

from packdeploy_core.errors import PackEntryNotFoundError, PackError, PackManifestError, PackNotAFileError, PackNotFoundError
from packdeploy_core.oci.digest import file_sha256

from .flow import resolve_bootstrap
from .manifest import PackManifest

logger = logging.getLogger(__name__)

MANIFEST_ENTRIES = ("manifest.json", "manifest.yaml", "manifest.yml")
FLOW_SUFFIX = ".ygtc"


@dataclass(frozen=True)
class PlatformPackInfo:
    manifest: PackManifest
    digest: str


def _normalize_member(name: str) -> str:
    while name.startswith("./"):
        name = name[2:]
    return PurePosixPath(name).as_posix()


def read_pack_entry(path: Path, entry: str) -> bytes:
    wanted = PurePosixPath(entry).as_posix()
    try:
        with tarfile.open(path, "r:*") as archive:
            for member in archive.getmembers():
                if not member.isfile() or _normalize_member(member.name) != wanted:
                    continue
                handle = archive.extractfile(member)
                if handle is None:
                    break
                with handle:
                    return handle.read()
    except tarfile.TarError as exc:
        raise PackError(f"pack {path} is not a readable archive: {exc}") from exc
    raise PackEntryNotFoundError(f"entry {wanted} not found in pack {path}")


def read_manifest_from_pack(path: Path) -> PackManifest:
    for entry in MANIFEST_ENTRIES:
        try:
            raw = read_pack_entry(path, entry)
        except PackEntryNotFoundError:
            continue
        try:
            if entry.endswith(".json"):
                payload = json.loads(raw.decode("utf-8"))
            else:
                payload = yaml.safe_load(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as exc:
            raise PackManifestError(f"invalid {entry} in pack {path}: {exc}") from exc
        return PackManifest.from_dict(payload)
    raise PackManifestError(f"pack {path} has no manifest ({', '.join(MANIFEST_ENTRIES)})")


def load_platform_pack(path: Path) -> PlatformPackInfo:
    path = Path(path)
    if not path.exists():
        raise PackNotFoundError(f"pack {path} does not exist")
    if not path.is_file():
        raise PackNotAFileError(f"pack {path} is not a file")

    digest = file_sha256(path)
    manifest = read_manifest_from_pack(path)
    logger.debug("loaded platform pack id=%s version=%s digest=%s", manifest.pack_id, manifest.version, digest)
    return PlatformPackInfo(manifest=manifest, digest=digest)


def flow_entry_name(flow_id: str) -> str:
    return f"flows/{flow_id}{FLOW_SUFFIX}"


def load_bootstrap_flow(path: Path, manifest: PackManifest, install: bool) -> tuple[str, bytes]:
    """Return the resolved flow id and its raw document."""
    bootstrap = resolve_bootstrap(manifest)
    flow_id = bootstrap.install_flow if install else bootstrap.upgrade_flow
    return flow_id, read_pack_entry(Path(path), flow_entry_name(flow_id))
