from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_PATCH_FILE = "config_patch.json"


@dataclass(frozen=True)
class ConfigSnapshot:
    existed: bool
    content: bytes | None = None


def default_config_patch_path(state_path: Path) -> Path:
    """Sibling of the bootstrap state file."""
    return Path(state_path).parent / CONFIG_PATCH_FILE


def snapshot_config(path: Path) -> ConfigSnapshot:
    if path.exists():
        return ConfigSnapshot(existed=True, content=path.read_bytes())
    return ConfigSnapshot(existed=False)


def apply_config_patch(path: Path, patch: Any) -> None:
    # written verbatim, no merge with the previous document
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(patch, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("applied config patch path=%s", path)


def restore_config(path: Path, snapshot: ConfigSnapshot) -> None:
    if snapshot.existed:
        path.write_bytes(snapshot.content or b"")
    elif path.exists():
        path.unlink()
