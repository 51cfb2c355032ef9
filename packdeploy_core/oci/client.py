"""Registry transport for platform packs over the OCI distribution API."""

from __future__ import annotations

import json
import logging
from typing import Protocol

import requests
from requests.exceptions import RequestException

from packdeploy_core.errors import OciFetchError

from .types import OciClientConfig, OciManifest, OciReference

logger = logging.getLogger(__name__)

OCI_ACCEPT = (
    "application/vnd.oci.image.manifest.v1+json,"
    "application/vnd.docker.distribution.manifest.v2+json"
)
DIGEST_HEADER = "Docker-Content-Digest"


class OciFetcher(Protocol):
    def fetch_manifest(self, reference: OciReference) -> tuple[OciManifest, str | None, bytes]: ...

    def fetch_blob(self, reference: OciReference, digest: str) -> bytes: ...


def registry_base(reference: OciReference) -> str:
    host = reference.host
    name = host if host.startswith("[") else host.split(":", 1)[0]
    if name == "localhost" or name.startswith("127.") or host.startswith("[::1]"):
        return f"http://{host}"
    return f"https://{host}"


class HttpOciFetcher:
    """Single-shot HTTP fetcher; no retries, no redirects."""

    def __init__(self, config: OciClientConfig | None = None, session: requests.Session | None = None) -> None:
        self.config = config or OciClientConfig()
        self.session = session or requests.Session()

    def fetch_manifest(self, reference: OciReference) -> tuple[OciManifest, str | None, bytes]:
        url = f"{registry_base(reference)}/v2/{reference.repository}/manifests/{reference.tag}"
        response = self._get(url, headers={"Accept": OCI_ACCEPT})
        digest_header = response.headers.get(DIGEST_HEADER)
        body = response.content
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise OciFetchError(f"invalid OCI manifest from {url}: {exc}") from exc
        if not isinstance(payload, dict):
            raise OciFetchError(f"invalid OCI manifest from {url}: expected a JSON object")
        return OciManifest.from_dict(payload), digest_header, body

    def fetch_blob(self, reference: OciReference, digest: str) -> bytes:
        url = f"{registry_base(reference)}/v2/{reference.repository}/blobs/{digest}"
        return self._get(url).content

    def _get(self, url: str, headers: dict[str, str] | None = None) -> requests.Response:
        merged = {**dict(self.config.headers), **(headers or {})}
        logger.debug("oci request url=%s", url)
        try:
            response = self.session.get(
                url,
                headers=merged,
                timeout=float(self.config.timeout_seconds),
                allow_redirects=False,
            )
        except RequestException as exc:
            raise OciFetchError(f"failed to fetch {url}: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise OciFetchError(f"fetch {url} failed with status {response.status_code}")
        return response
