"""Content-addressed pack cache keyed by logical OCI reference."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from packdeploy_core.errors import NoLayersError, OciFetchError
from packdeploy_core.network import NetworkPolicy

from .client import HttpOciFetcher, OciFetcher
from .digest import blob_file_name, verify_digest
from .types import OciLayer, OciManifest, OciReference, parse_oci_reference

logger = logging.getLogger(__name__)

PACK_MEDIA_TYPES = (
    "application/vnd.packdeploy.pack.v1+gtpack",
    "application/octet-stream",
)


@dataclass
class CacheIndex:
    entries: dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> "CacheIndex":
        if not path.exists():
            return cls()
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise OciFetchError(f"cache index parse error: {exc}") from exc
        entries = payload.get("entries") if isinstance(payload, dict) else None
        if not isinstance(entries, dict):
            raise OciFetchError("cache index parse error: 'entries' must be an object")
        return cls(entries={str(key): str(value) for key, value in entries.items()})

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"entries": self.entries}, indent=2, sort_keys=True), encoding="utf-8")


class PackCache:
    """Blob store under ``<root>/cache``.

    The index is read, mutated and rewritten without locking; concurrent
    resolvers sharing a root may race (last writer wins).
    """

    def __init__(self, cache_root: Path) -> None:
        self.root = Path(cache_root) / "cache"
        self.index_path = self.root / "index.json"

    def blob_path(self, digest: str) -> Path:
        return self.root / blob_file_name(digest)

    def lookup(self, reference: OciReference) -> Path | None:
        index = CacheIndex.load(self.index_path)
        digest = index.entries.get(reference.cache_key)
        if not digest:
            return None
        cached = self.blob_path(digest)
        return cached if cached.exists() else None

    def store(self, reference: OciReference, digest: str, data: bytes) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.blob_path(digest)
        path.write_bytes(data)
        index = CacheIndex.load(self.index_path)
        index.entries[reference.cache_key] = digest
        index.save(self.index_path)
        return path


def select_pack_layer(manifest: OciManifest) -> OciLayer | None:
    for layer in manifest.layers:
        if layer.media_type in PACK_MEDIA_TYPES:
            return layer
    return manifest.layers[0] if manifest.layers else None


def resolve_oci_pack(
    raw: str,
    cache_root: Path,
    network_policy: NetworkPolicy,
    fetcher: OciFetcher | None = None,
) -> Path:
    reference = parse_oci_reference(raw)
    network_policy.enforce(reference.host)
    cache = PackCache(cache_root)

    cached = cache.lookup(reference)
    if cached is not None:
        logger.debug("oci cache hit ref=%s path=%s", reference.cache_key, cached)
        return cached

    fetcher = fetcher or HttpOciFetcher()
    manifest, manifest_digest, manifest_bytes = fetcher.fetch_manifest(reference)
    if manifest_digest:
        verify_digest(manifest_digest, manifest_bytes, "manifest")
    layer = select_pack_layer(manifest)
    if layer is None:
        raise NoLayersError(reference.raw)

    data = fetcher.fetch_blob(reference, layer.digest)
    verify_digest(layer.digest, data, "pack blob")

    path = cache.store(reference, layer.digest, data)
    logger.info("fetched platform pack ref=%s digest=%s", reference.cache_key, layer.digest)
    return path
