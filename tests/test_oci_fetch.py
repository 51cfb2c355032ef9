from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from socketserver import ThreadingMixIn

import pytest

from packdeploy_core.errors import (
    DigestMismatchError,
    InvalidReferenceError,
    NetworkDeniedError,
    NoLayersError,
    OciFetchError,
)
from packdeploy_core.network import NetAllowList, NetworkPolicy
from packdeploy_core.oci import (
    CacheIndex,
    HttpOciFetcher,
    OciLayer,
    OciManifest,
    OciReference,
    blob_file_name,
    parse_oci_reference,
    registry_base,
    resolve_oci_pack,
    select_pack_layer,
    sha256_bytes,
)

_ONLINE = NetworkPolicy(allow_network=True)
_PACK_MEDIA_TYPE = "application/vnd.packdeploy.pack.v1+gtpack"


class _FakeFetcher:
    def __init__(
        self,
        blob: bytes,
        *,
        layer_digest: str | None = None,
        manifest_digest: str | None = "auto",
        layers: list[dict[str, object]] | None = None,
    ) -> None:
        self.blob = blob
        digest = layer_digest or sha256_bytes(blob)
        if layers is None:
            layers = [{"mediaType": _PACK_MEDIA_TYPE, "digest": digest, "size": len(blob)}]
        self.manifest_bytes = json.dumps({"layers": layers}).encode("utf-8")
        self.manifest_digest = sha256_bytes(self.manifest_bytes) if manifest_digest == "auto" else manifest_digest
        self.manifest_calls = 0
        self.blob_calls: list[str] = []

    def fetch_manifest(self, reference: OciReference):
        self.manifest_calls += 1
        payload = json.loads(self.manifest_bytes.decode("utf-8"))
        return OciManifest.from_dict(payload), self.manifest_digest, self.manifest_bytes

    def fetch_blob(self, reference: OciReference, digest: str) -> bytes:
        self.blob_calls.append(digest)
        return self.blob


def test_parse_reference_defaults_tag_to_latest() -> None:
    ref = parse_oci_reference("oci://registry.local:5000/platform/core")

    assert ref.host == "registry.local:5000"
    assert ref.repository == "platform/core"
    assert ref.tag == "latest"
    assert ref.cache_key == "registry.local:5000/platform/core:latest"


def test_parse_reference_with_tag() -> None:
    ref = parse_oci_reference("oci://ghcr.io/acme/platform:1.2.0")

    assert (ref.host, ref.repository, ref.tag) == ("ghcr.io", "acme/platform", "1.2.0")


@pytest.mark.parametrize("raw", ["https://ghcr.io/acme/platform", "oci://ghcr.io", "oci:///repo", "oci://host/"])
def test_parse_reference_rejects_invalid(raw: str) -> None:
    with pytest.raises(InvalidReferenceError):
        parse_oci_reference(raw)


def test_registry_base_uses_http_for_loopback_only() -> None:
    assert registry_base(parse_oci_reference("oci://localhost:5000/a/b")).startswith("http://")
    assert registry_base(parse_oci_reference("oci://127.0.0.1:5000/a/b")).startswith("http://")
    assert registry_base(parse_oci_reference("oci://[::1]:5000/a/b")).startswith("http://")
    assert registry_base(parse_oci_reference("oci://ghcr.io/a/b")) == "https://ghcr.io"
    assert registry_base(parse_oci_reference("oci://notlocalhost.example.com/a/b")).startswith("https://")
    assert registry_base(parse_oci_reference("oci://localhost.evil.io:443/a/b")).startswith("https://")


def test_select_pack_layer_prefers_known_media_type() -> None:
    manifest = OciManifest(
        layers=(
            OciLayer(media_type="application/vnd.oci.image.config.v1+json", digest="sha256:config"),
            OciLayer(media_type=_PACK_MEDIA_TYPE, digest="sha256:pack"),
        )
    )
    assert select_pack_layer(manifest).digest == "sha256:pack"

    fallback = OciManifest(layers=(OciLayer(media_type="application/x-other", digest="sha256:first"),))
    assert select_pack_layer(fallback).digest == "sha256:first"
    assert select_pack_layer(OciManifest()) is None


def test_resolve_fetches_once_and_then_hits_cache(tmp_path: Path) -> None:
    blob = b"platform-pack-bytes"
    fetcher = _FakeFetcher(blob)

    first = resolve_oci_pack("oci://registry.local/platform/core:1.0.0", tmp_path, _ONLINE, fetcher)
    second = resolve_oci_pack("oci://registry.local/platform/core:1.0.0", tmp_path, _ONLINE, fetcher)

    assert first == second
    assert first.read_bytes() == blob
    assert first.name == blob_file_name(sha256_bytes(blob))
    assert fetcher.manifest_calls == 1
    assert len(fetcher.blob_calls) == 1
    index = CacheIndex.load(tmp_path / "cache" / "index.json")
    assert index.entries == {"registry.local/platform/core:1.0.0": sha256_bytes(blob)}


def test_resolve_refetches_when_cached_blob_is_missing(tmp_path: Path) -> None:
    fetcher = _FakeFetcher(b"pack")
    path = resolve_oci_pack("oci://registry.local/platform/core:1.0.0", tmp_path, _ONLINE, fetcher)
    path.unlink()

    resolve_oci_pack("oci://registry.local/platform/core:1.0.0", tmp_path, _ONLINE, fetcher)

    assert fetcher.manifest_calls == 2


def test_blob_digest_mismatch_is_not_cached(tmp_path: Path) -> None:
    fetcher = _FakeFetcher(b"tampered", layer_digest=sha256_bytes(b"original"))

    with pytest.raises(DigestMismatchError, match="pack blob digest mismatch") as excinfo:
        resolve_oci_pack("oci://registry.local/platform/core:1.0.0", tmp_path, _ONLINE, fetcher)

    assert excinfo.value.expected == sha256_bytes(b"original")
    assert excinfo.value.actual == sha256_bytes(b"tampered")
    assert not (tmp_path / "cache" / "index.json").exists()
    assert not list((tmp_path).glob("cache/*.gtpack"))


def test_manifest_digest_header_mismatch_fails(tmp_path: Path) -> None:
    fetcher = _FakeFetcher(b"pack", manifest_digest="sha256:" + "0" * 64)

    with pytest.raises(DigestMismatchError, match="manifest digest mismatch"):
        resolve_oci_pack("oci://registry.local/platform/core:1.0.0", tmp_path, _ONLINE, fetcher)
    assert fetcher.blob_calls == []


def test_missing_manifest_digest_header_is_accepted(tmp_path: Path) -> None:
    fetcher = _FakeFetcher(b"pack", manifest_digest=None)

    path = resolve_oci_pack("oci://registry.local/platform/core:1.0.0", tmp_path, _ONLINE, fetcher)

    assert path.read_bytes() == b"pack"


def test_manifest_without_layers_fails(tmp_path: Path) -> None:
    fetcher = _FakeFetcher(b"pack", layers=[])

    with pytest.raises(NoLayersError):
        resolve_oci_pack("oci://registry.local/platform/core:1.0.0", tmp_path, _ONLINE, fetcher)


def test_network_policy_is_checked_before_cache_and_fetch(tmp_path: Path) -> None:
    fetcher = _FakeFetcher(b"pack")
    policy = NetworkPolicy(allow_network=True, allowlist=NetAllowList.parse("allowed.local"))

    with pytest.raises(NetworkDeniedError):
        resolve_oci_pack("oci://registry.local/platform/core:1.0.0", tmp_path, policy, fetcher)
    with pytest.raises(NetworkDeniedError):
        resolve_oci_pack("oci://registry.local/platform/core:1.0.0", tmp_path, NetworkPolicy(), fetcher)
    assert fetcher.manifest_calls == 0


class _ThreadedServer(ThreadingMixIn, HTTPServer):
    daemon_threads = True
    allow_reuse_address = True


class _MockRegistryHandler(BaseHTTPRequestHandler):
    server_version = "MockRegistry/1.0"
    protocol_version = "HTTP/1.1"

    def do_GET(self) -> None:
        self.server.requests.append((self.path, self.headers.get("Accept")))
        blob = self.server.blob
        digest = sha256_bytes(blob)
        if self.path == "/v2/platform/core/manifests/1.0.0":
            body = json.dumps({"layers": [{"mediaType": _PACK_MEDIA_TYPE, "digest": digest, "size": len(blob)}]})
            payload = body.encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", "application/vnd.oci.image.manifest.v1+json")
            self.send_header("Docker-Content-Digest", sha256_bytes(payload))
        elif self.path == f"/v2/platform/core/blobs/{digest}":
            payload = blob
            self.send_response(200)
            self.send_header("Content-Type", "application/octet-stream")
        else:
            payload = b"{}"
            self.send_response(404)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: object) -> None:
        return


def _start_mock_registry(blob: bytes) -> tuple[_ThreadedServer, str]:
    server = _ThreadedServer(("127.0.0.1", 0), _MockRegistryHandler)
    server.blob = blob
    server.requests = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, f"127.0.0.1:{server.server_port}"


def _shutdown(server: _ThreadedServer) -> None:
    server.shutdown()
    server.server_close()


def test_http_fetcher_resolves_pack_from_registry(tmp_path: Path) -> None:
    blob = b"\x1f\x8b pack payload"
    server, host = _start_mock_registry(blob)
    try:
        path = resolve_oci_pack(f"oci://{host}/platform/core:1.0.0", tmp_path, _ONLINE, HttpOciFetcher())
    finally:
        _shutdown(server)

    assert path.read_bytes() == blob
    paths = [item[0] for item in server.requests]
    assert paths == ["/v2/platform/core/manifests/1.0.0", f"/v2/platform/core/blobs/{sha256_bytes(blob)}"]
    assert "application/vnd.oci.image.manifest.v1+json" in (server.requests[0][1] or "")


def test_http_fetcher_raises_on_error_status(tmp_path: Path) -> None:
    server, host = _start_mock_registry(b"pack")
    try:
        with pytest.raises(OciFetchError, match="status 404"):
            resolve_oci_pack(f"oci://{host}/platform/missing:1.0.0", tmp_path, _ONLINE, HttpOciFetcher())
    finally:
        _shutdown(server)
