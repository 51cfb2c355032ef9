"""OCI reference and manifest datatypes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from packdeploy_core.errors import InvalidReferenceError, OciFetchError

OCI_SCHEME = "oci://"


@dataclass(frozen=True)
class OciReference:
    raw: str
    host: str
    repository: str
    tag: str

    @property
    def cache_key(self) -> str:
        return f"{self.host}/{self.repository}:{self.tag}"


@dataclass(frozen=True)
class OciLayer:
    media_type: str
    digest: str
    size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"mediaType": self.media_type, "digest": self.digest}
        if self.size is not None:
            payload["size"] = self.size
        return payload


@dataclass(frozen=True)
class OciManifest:
    layers: tuple[OciLayer, ...] = ()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "OciManifest":
        raw_layers = payload.get("layers") or []
        if not isinstance(raw_layers, list):
            raise OciFetchError("oci manifest layers must be a list")
        layers: list[OciLayer] = []
        for item in raw_layers:
            if not isinstance(item, Mapping):
                raise OciFetchError("oci manifest layer entries must be objects")
            media_type = str(item.get("mediaType") or "").strip()
            digest = str(item.get("digest") or "").strip()
            if not media_type or not digest:
                raise OciFetchError("oci manifest layer requires mediaType and digest")
            size = item.get("size")
            layers.append(OciLayer(media_type=media_type, digest=digest, size=int(size) if size is not None else None))
        return cls(layers=tuple(layers))

    def to_dict(self) -> dict[str, Any]:
        return {"layers": [layer.to_dict() for layer in self.layers]}


@dataclass(frozen=True)
class OciClientConfig:
    timeout_seconds: float = 10.0
    headers: Mapping[str, str] = field(default_factory=dict)


def parse_oci_reference(raw: str) -> OciReference:
    if not raw.startswith(OCI_SCHEME):
        raise InvalidReferenceError("oci reference must start with oci://")
    rest = raw[len(OCI_SCHEME) :]
    if "/" not in rest:
        raise InvalidReferenceError("oci reference missing host/repo")
    host, path = rest.split("/", 1)
    if not host or not path:
        raise InvalidReferenceError("oci reference missing host or repository")
    slash_index = path.rfind("/")
    colon_index = path.rfind(":")
    if colon_index > slash_index:
        repository, tag = path[:colon_index], path[colon_index + 1 :]
    else:
        repository, tag = path, "latest"
    if not repository or not tag:
        raise InvalidReferenceError(f"invalid oci reference: {raw!r}")
    return OciReference(raw=raw, host=host, repository=repository, tag=tag)
