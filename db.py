"""
db.py
JSON file store + initialization (creates the data dir, inserts default admin, etc.)

Each collection lives in its own file, `<name>-data.json`, shaped as
{"<name>": [...records], "version": n, "last_id": m}. Writes always replace
the whole collection.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path

import config
from errors import StoreConflict, StoreUnavailable

logger = logging.getLogger(__name__)

DATA_DIR: Path = config.DATA_DIR


@dataclass(frozen=True)
class Document:
    name: str
    records: list[dict] = field(default_factory=list)
    version: int = 0
    last_id: int = 0


def _collection_path(name: str) -> Path:
    return Path(DATA_DIR) / f"{name}-data.json"


def load_document(name: str) -> Document:
    path = _collection_path(name)
    if not path.exists():
        return Document(name=name)
    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)
    except (OSError, ValueError) as exc:
        logger.exception("Could not read collection %s from %s", name, path)
        raise StoreUnavailable(f"Could not read {name}.") from exc

    if not isinstance(raw, dict) or not isinstance(raw.get(name, []), list):
        logger.error("Collection file %s has an unexpected shape", path)
        raise StoreUnavailable(f"Could not read {name}.")

    try:
        return Document(
            name=name,
            records=list(raw.get(name, [])),
            version=int(raw.get("version", 0)),
            last_id=int(raw.get("last_id", 0)),
        )
    except (TypeError, ValueError) as exc:
        logger.error("Collection file %s has a bad version or last_id", path)
        raise StoreUnavailable(f"Could not read {name}.") from exc


def save_document(doc: Document, expected_version: int | None = None) -> Document:
    """
    Replace the whole collection on disk and return it with its new version.
    - expected_version: the version the caller loaded; a mismatch means someone
      else wrote in between and raises StoreConflict.
    """
    current = load_document(doc.name)
    if expected_version is not None and current.version != expected_version:
        logger.warning(
            "Version conflict on %s: expected %s, found %s",
            doc.name, expected_version, current.version,
        )
        raise StoreConflict()

    saved = replace(doc, version=current.version + 1)
    payload = {doc.name: saved.records, "version": saved.version, "last_id": saved.last_id}
    path = _collection_path(doc.name)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        # temp file + rename so readers never see a half-written file
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{doc.name}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        logger.exception("Could not write collection %s to %s", doc.name, path)
        raise StoreUnavailable(f"Could not save {doc.name}.") from exc

    logger.debug("Saved %s (%d records, version %d)", doc.name, len(saved.records), saved.version)
    return saved


def load(name: str) -> list[dict]:
    return load_document(name).records


def save(name: str, records: list[dict]) -> None:
    current = load_document(name)
    save_document(replace(current, records=list(records)))


def _get_setting(key: str, default: str | None = None) -> str | None:
    for row in load("settings"):
        if row.get("key") == key:
            return str(row.get("value"))
    return default


def _set_setting(key: str, value: str) -> None:
    rows = [r for r in load("settings") if r.get("key") != key]
    rows.append({"key": key, "value": value})
    save("settings", rows)


def init_store(default_admin_hash: str) -> None:
    """
    Initialize the store.
    - Create the data directory
    - Insert default admin (admin/admin123) if no user exists
    - Force password change on first login
    """
    try:
        Path(DATA_DIR).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.exception("Could not create data directory %s", DATA_DIR)
        raise StoreUnavailable("Could not create the data directory.") from exc

    users = load("users")
    if not users:
        now = datetime.now(timezone.utc).isoformat(timespec="seconds")
        save("users", [{
            "username": "admin",
            "password_hash": default_admin_hash,
            "role": "admin",
            "created_at": now,
        }])
        _set_setting("force_password_change", "1")
        logger.info("Created default admin user")
    else:
        # ensure setting exists
        if _get_setting("force_password_change") is None:
            _set_setting("force_password_change", "0")


def is_force_password_change() -> bool:
    return _get_setting("force_password_change") == "1"


def clear_force_password_change() -> None:
    _set_setting("force_password_change", "0")
