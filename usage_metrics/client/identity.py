"""Install identifier persistence in a per-application local directory."""

from __future__ import annotations

import base64
import json
import logging
import os
import secrets
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger("usage_metrics.client")

INSTALL_ID_FILE_NAME = "id.json"
CONFIG_DIR_NAME = "usage-metrics"


@dataclass(slots=True, frozen=True)
class InstallIdData:
    """Contents of the install identifier file."""

    install_id: str
    created_timestamp: int = 0

    @classmethod
    def from_json(cls, payload: Any) -> "InstallIdData":
        if not isinstance(payload, dict):
            raise ValueError("install id file must contain a JSON object")
        install_id = payload.get("installId")
        if not isinstance(install_id, str) or not install_id:
            raise ValueError("invalid install id")
        created = payload.get("idCreatedTimestamp", 0)
        if not isinstance(created, int) or isinstance(created, bool):
            created = 0
        return cls(install_id=install_id, created_timestamp=created)

    def to_json(self) -> dict[str, Any]:
        return {"installId": self.install_id, "idCreatedTimestamp": self.created_timestamp}


def default_dir(app_id: str) -> Path:
    """Return the default local storage directory for ``app_id``."""

    return Path.home() / ".config" / CONFIG_DIR_NAME / app_id


def default_install_id_path(app_id: str) -> Path:
    return default_dir(app_id) / INSTALL_ID_FILE_NAME


def load_json_file(path: Path) -> Any:
    """Read and decode a JSON file. Raises ``FileNotFoundError`` if absent."""

    with Path(path).open("r", encoding="utf-8") as handle:
        return json.load(handle)


def store_json_file(path: Path, data: Any) -> None:
    """Write ``data`` as JSON, creating parent directories.

    The file is written to a temporary sibling first and renamed into place so
    readers never observe a partially written file.
    """

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, separators=(",", ":"))
            handle.write("\n")
        os.replace(tmp_name, path)
    except Exception:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def generate_install_id() -> str:
    """Return a random 64-bit, base64-encoded identifier."""

    return base64.b64encode(secrets.token_bytes(8)).decode("ascii")


def load_install_id(path: Path) -> InstallIdData:
    return InstallIdData.from_json(load_json_file(path))


def load_or_create_install_id(app_id: str, path: Path | None = None) -> str:
    """Return the persisted install id for ``app_id``, creating it on first use.

    A failure to persist a freshly generated id is not fatal: the id is still
    returned and used for this process.
    """

    path = Path(path) if path is not None else default_install_id_path(app_id)
    try:
        return load_install_id(path).install_id
    except FileNotFoundError:
        pass
    except (OSError, ValueError) as exc:
        logger.debug("Discarding unreadable install id file %s: %s", path, exc)

    data = InstallIdData(install_id=generate_install_id(), created_timestamp=int(time.time()))
    try:
        store_json_file(path, data.to_json())
    except OSError as exc:
        logger.debug("failed to store new install id: %s", exc)
    return data.install_id
