"""sha256 digest helpers shared by the fetcher and the pack loader."""

from __future__ import annotations

import hashlib
from pathlib import Path

from packdeploy_core.errors import DigestMismatchError

_CHUNK_SIZE = 1024 * 1024


def sha256_bytes(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def file_sha256(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return f"sha256:{h.hexdigest()}"


def verify_digest(expected: str, data: bytes, context: str) -> None:
    actual = sha256_bytes(data)
    if expected != actual:
        raise DigestMismatchError(context, expected, actual)


def blob_file_name(digest: str) -> str:
    return f"{digest.replace(':', '-')}.gtpack"
