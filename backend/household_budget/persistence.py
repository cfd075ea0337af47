from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .dates import utc_now_iso
from .errors import ApiError, ErrorKind

logger = logging.getLogger(__name__)

USERS_KEY = "users"
_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def _check_key(key: str) -> str:
    if not _KEY_RE.match(key):
        raise ValueError(f"invalid storage key: {key!r}")
    return key


class DataStore:
    """Key/value store of JSON-compatible values, one list per user and record kind."""

    def get_data(self, key: str) -> Any | None:
        raise NotImplementedError

    def save_data(self, key: str, data: Any) -> None:
        raise NotImplementedError

    def delete_data(self, key: str) -> None:
        raise NotImplementedError

    def list_keys(self, prefix: str = "") -> list[str]:
        raise NotImplementedError

    def get_list(self, kind: str, user_id: str) -> list[dict[str, Any]]:
        return self.get_data(f"{kind}_{user_id}") or []

    def save_list(self, kind: str, user_id: str, rows: list[dict[str, Any]]) -> None:
        self.save_data(f"{kind}_{user_id}", rows)

    def list_users(self) -> list[dict[str, Any]]:
        return self.get_data(USERS_KEY) or []

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        return next((u for u in self.list_users() if u["id"] == user_id), None)

    def get_user_by_username(self, username: str) -> dict[str, Any] | None:
        lowered = username.lower()
        return next((u for u in self.list_users() if u["username"] == lowered), None)

    def create_user(self, user: dict[str, Any]) -> dict[str, Any]:
        users = self.list_users()
        users.append(user)
        self.save_data(USERS_KEY, users)
        return user

    def update_user(self, user_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
        users = self.list_users()
        for user in users:
            if user["id"] == user_id:
                user.update(changes)
                self.save_data(USERS_KEY, users)
                return user
        return None


class InMemoryDataStore(DataStore):
    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get_data(self, key: str) -> Any | None:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    def save_data(self, key: str, data: Any) -> None:
        self._data[_check_key(key)] = copy.deepcopy(data)

    def delete_data(self, key: str) -> None:
        self._data.pop(key, None)

    def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    def clear(self) -> None:
        self._data.clear()


class FileDataStore(DataStore):
    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{_check_key(key)}.json"

    def get_data(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def save_data(self, key: str, data: Any) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2, default=str)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete_data(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(p.stem for p in self.data_dir.glob("*.json") if p.stem.startswith(prefix))


class SqlDataStore(DataStore):
    def __init__(self, database_url: str) -> None:
        self.engine: Engine = create_engine(database_url, future=True, pool_pre_ping=True)
        self._ensure_table()

    def _run(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(text(sql), params or {})
                if result.returns_rows:
                    return [dict(row._mapping) for row in result.fetchall()]
                return []
        except SQLAlchemyError as exc:
            logger.error("database error: %s", exc.__class__.__name__)
            raise ApiError(ErrorKind.internal, f"database error: {exc.__class__.__name__}") from exc

    def _ensure_table(self) -> None:
        self._run(
            """
            create table if not exists kv_store (
              key varchar(255) primary key,
              value text not null,
              updated_at varchar(40) not null
            )
            """
        )

    def get_data(self, key: str) -> Any | None:
        rows = self._run("select value from kv_store where key = :key", {"key": key})
        if not rows:
            return None
        return json.loads(rows[0]["value"])

    def save_data(self, key: str, data: Any) -> None:
        params = {
            "key": _check_key(key),
            "value": json.dumps(data, ensure_ascii=False, default=str),
            "updated_at": utc_now_iso(),
        }
        try:
            with self.engine.begin() as conn:
                conn.execute(text("delete from kv_store where key = :key"), {"key": key})
                conn.execute(
                    text("insert into kv_store (key, value, updated_at) values (:key, :value, :updated_at)"),
                    params,
                )
        except SQLAlchemyError as exc:
            logger.error("database error: %s", exc.__class__.__name__)
            raise ApiError(ErrorKind.internal, f"database error: {exc.__class__.__name__}") from exc

    def delete_data(self, key: str) -> None:
        self._run("delete from kv_store where key = :key", {"key": key})

    def list_keys(self, prefix: str = "") -> list[str]:
        rows = self._run("select key from kv_store order by key")
        return [row["key"] for row in rows if row["key"].startswith(prefix)]


def copy_store(source: DataStore, target: DataStore, prefix: str = "") -> int:
    copied = 0
    for key in source.list_keys(prefix):
        target.save_data(key, source.get_data(key))
        copied += 1
    return copied


def get_data_store() -> DataStore:
    if settings.storage_backend == "sql":
        if settings.database_url.startswith("sqlite"):
            Path(settings.data_dir).mkdir(parents=True, exist_ok=True)
        return SqlDataStore(settings.database_url)
    if settings.storage_backend == "file":
        return FileDataStore(settings.data_dir)
    return InMemoryDataStore()
