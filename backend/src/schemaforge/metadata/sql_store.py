"""SQL catalog store.

Metadata lives in three system tables (_object_metadata, _field_metadata,
_metadata_versions). Row bodies are stored as JSON text so the schema of
the catalog itself never needs migrating when metadata attributes change.

The store takes a SQLAlchemy engine, which keeps it dialect-neutral
(SQLite and PostgreSQL). Queries are blocking, so each public method runs
its work in a worker thread with asyncio.to_thread. An in-memory SQLite
engine is bound to one thread and is not supported here; use a file.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from schemaforge.metadata.catalog import CatalogChanges, check_expected_version
from schemaforge.metadata.models import FieldMetadata, ObjectMetadata


class SQLAlchemyCatalogStore:
    """Catalog store backed by SQLAlchemy Core."""

    def __init__(self, engine: Engine):
        self._engine = engine
        self._ensure_tables()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_tables(self) -> None:
        with self._engine.begin() as conn:
            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS _object_metadata (
                    id              TEXT PRIMARY KEY,
                    workspace_id    TEXT NOT NULL,
                    name_singular   TEXT NOT NULL,
                    body            TEXT NOT NULL
                )
            """))
            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS _field_metadata (
                    id              TEXT PRIMARY KEY,
                    workspace_id    TEXT NOT NULL,
                    object_id       TEXT NOT NULL,
                    body            TEXT NOT NULL
                )
            """))
            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS _metadata_versions (
                    workspace_id    TEXT PRIMARY KEY,
                    version         INTEGER NOT NULL
                )
            """))
            conn.execute(text("""
                CREATE INDEX IF NOT EXISTS idx_object_metadata_workspace
                ON _object_metadata(workspace_id)
            """))
            conn.execute(text("""
                CREATE INDEX IF NOT EXISTS idx_field_metadata_object
                ON _field_metadata(workspace_id, object_id)
            """))

    def _fields_by_object(self, conn: Connection, workspace_id: str) -> dict[str, list[FieldMetadata]]:
        rows = conn.execute(
            text("SELECT object_id, body FROM _field_metadata WHERE workspace_id = :ws"),
            {"ws": workspace_id},
        ).mappings()
        grouped: dict[str, list[FieldMetadata]] = {}
        for row in rows:
            grouped.setdefault(row["object_id"], []).append(
                FieldMetadata.from_dict(json.loads(row["body"]))
            )
        return grouped

    def _row_to_object(self, body: str, fields: list[FieldMetadata]) -> ObjectMetadata:
        data: dict[str, Any] = json.loads(body)
        data["fields"] = [f.to_dict() for f in fields]
        return ObjectMetadata.from_dict(data)

    def _read_version(self, conn: Connection, workspace_id: str) -> int:
        row = conn.execute(
            text("SELECT version FROM _metadata_versions WHERE workspace_id = :ws"),
            {"ws": workspace_id},
        ).first()
        return row[0] if row else 0

    def _write_object(self, conn: Connection, obj: ObjectMetadata) -> None:
        conn.execute(text("DELETE FROM _object_metadata WHERE id = :id"), {"id": obj.id})
        conn.execute(
            text("""
                INSERT INTO _object_metadata (id, workspace_id, name_singular, body)
                VALUES (:id, :ws, :name, :body)
            """),
            {
                "id": obj.id,
                "ws": obj.workspace_id,
                "name": obj.name_singular,
                "body": json.dumps(obj.to_dict(include_fields=False)),
            },
        )
        conn.execute(
            text("DELETE FROM _field_metadata WHERE object_id = :id"), {"id": obj.id}
        )
        for f in obj.fields.values():
            conn.execute(
                text("""
                    INSERT INTO _field_metadata (id, workspace_id, object_id, body)
                    VALUES (:id, :ws, :object_id, :body)
                """),
                {
                    "id": f.id,
                    "ws": obj.workspace_id,
                    "object_id": obj.id,
                    "body": json.dumps(f.to_dict()),
                },
            )

    def _load_objects(self, workspace_id: str) -> list[ObjectMetadata]:
        with self._engine.connect() as conn:
            fields = self._fields_by_object(conn, workspace_id)
            rows = conn.execute(
                text("""
                    SELECT id, body FROM _object_metadata
                    WHERE workspace_id = :ws ORDER BY name_singular
                """),
                {"ws": workspace_id},
            ).mappings()
            return [self._row_to_object(r["body"], fields.get(r["id"], [])) for r in rows]

    def _get_object(self, workspace_id: str, object_id: str) -> ObjectMetadata | None:
        with self._engine.connect() as conn:
            row = conn.execute(
                text("SELECT body FROM _object_metadata WHERE workspace_id = :ws AND id = :id"),
                {"ws": workspace_id, "id": object_id},
            ).first()
            if row is None:
                return None
            field_rows = conn.execute(
                text("SELECT body FROM _field_metadata WHERE workspace_id = :ws AND object_id = :id"),
                {"ws": workspace_id, "id": object_id},
            )
            fields = [FieldMetadata.from_dict(json.loads(r[0])) for r in field_rows]
            return self._row_to_object(row[0], fields)

    def _get_field(self, workspace_id: str, field_id: str) -> FieldMetadata | None:
        with self._engine.connect() as conn:
            row = conn.execute(
                text("SELECT body FROM _field_metadata WHERE workspace_id = :ws AND id = :id"),
                {"ws": workspace_id, "id": field_id},
            ).first()
            return FieldMetadata.from_dict(json.loads(row[0])) if row else None

    def _apply_changes(
        self, workspace_id: str, changes: CatalogChanges, expected_version: int | None
    ) -> None:
        with self._engine.begin() as conn:
            check_expected_version(
                workspace_id, self._read_version(conn, workspace_id), expected_version
            )
            for obj in changes.upserts:
                self._write_object(conn, obj)
            for field_id in changes.deleted_field_ids:
                conn.execute(
                    text("DELETE FROM _field_metadata WHERE workspace_id = :ws AND id = :id"),
                    {"ws": workspace_id, "id": field_id},
                )
            for object_id in changes.deleted_object_ids:
                conn.execute(
                    text("DELETE FROM _field_metadata WHERE workspace_id = :ws AND object_id = :id"),
                    {"ws": workspace_id, "id": object_id},
                )
                conn.execute(
                    text("DELETE FROM _object_metadata WHERE workspace_id = :ws AND id = :id"),
                    {"ws": workspace_id, "id": object_id},
                )

    def _delete_workspace(self, workspace_id: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                text("DELETE FROM _field_metadata WHERE workspace_id = :ws"), {"ws": workspace_id}
            )
            conn.execute(
                text("DELETE FROM _object_metadata WHERE workspace_id = :ws"), {"ws": workspace_id}
            )

    def _increment_version(self, workspace_id: str, expected: int | None) -> int | None:
        with self._engine.begin() as conn:
            current = self._read_version(conn, workspace_id)
            if expected is not None and current != expected:
                return None
            if current == 0:
                conn.execute(
                    text("INSERT INTO _metadata_versions (workspace_id, version) VALUES (:ws, 1)"),
                    {"ws": workspace_id},
                )
                return 1
            result = conn.execute(
                text("""
                    UPDATE _metadata_versions SET version = :new
                    WHERE workspace_id = :ws AND version = :current
                """),
                {"ws": workspace_id, "new": current + 1, "current": current},
            )
            if result.rowcount != 1:
                return None
            return current + 1

    def _get_version(self, workspace_id: str) -> int:
        with self._engine.connect() as conn:
            return self._read_version(conn, workspace_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load_objects(self, workspace_id: str) -> list[ObjectMetadata]:
        return await asyncio.to_thread(self._load_objects, workspace_id)

    async def get_object(self, workspace_id: str, object_id: str) -> ObjectMetadata | None:
        return await asyncio.to_thread(self._get_object, workspace_id, object_id)

    async def get_field(self, workspace_id: str, field_id: str) -> FieldMetadata | None:
        return await asyncio.to_thread(self._get_field, workspace_id, field_id)

    async def apply_changes(
        self,
        workspace_id: str,
        changes: CatalogChanges,
        expected_version: int | None = None,
    ) -> None:
        await asyncio.to_thread(self._apply_changes, workspace_id, changes, expected_version)

    async def delete_workspace(self, workspace_id: str) -> None:
        await asyncio.to_thread(self._delete_workspace, workspace_id)

    async def get_version(self, workspace_id: str) -> int:
        return await asyncio.to_thread(self._get_version, workspace_id)

    async def increment_version(
        self, workspace_id: str, expected: int | None = None
    ) -> int | None:
        return await asyncio.to_thread(self._increment_version, workspace_id, expected)
