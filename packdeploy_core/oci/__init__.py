"""OCI pack fetching for packdeploy."""

from .cache import PACK_MEDIA_TYPES, CacheIndex, PackCache, resolve_oci_pack, select_pack_layer
from .client import OCI_ACCEPT, HttpOciFetcher, OciFetcher, registry_base
from .digest import blob_file_name, file_sha256, sha256_bytes, verify_digest
from .types import OciClientConfig, OciLayer, OciManifest, OciReference, parse_oci_reference

__all__ = [
    "CacheIndex",
    "HttpOciFetcher",
    "OCI_ACCEPT",
    "OciClientConfig",
    "OciFetcher",
    "OciLayer",
    "OciManifest",
    "OciReference",
    "PACK_MEDIA_TYPES",
    "PackCache",
    "blob_file_name",
    "file_sha256",
    "parse_oci_reference",
    "registry_base",
    "resolve_oci_pack",
    "select_pack_layer",
    "sha256_bytes",
    "verify_digest",
]
