"""
SQLite Finance Backend (local-first variant)

DESIGN DECISION: Each collection is a table of JSON documents.
The entity models already define the schema, so the database only
needs an id, a sort key and the serialized entity:

    CREATE TABLE projects (id TEXT PRIMARY KEY, sort_key TEXT, data TEXT)

Reads are cheap and always current, which is why the local variant
pairs this backend with AlwaysFreshPolicy.

TRADEOFFS:
- No relational queries (the summary layer aggregates in Python)
- Whole-entity rewrites on update (fine at personal-finance volumes)
"""

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from cotton.config import LocalDatabaseSettings, get_settings
from cotton.models.finance import COLLECTION_MODELS, Entity, Transaction, utc_now
from cotton.services.backend.interface import (
    BackendError,
    BackendNotFoundError,
    BackendValidationError,
    FinanceBackend,
)


# Fields the database assigns; callers cannot set them
MANAGED_FIELDS = ("id", "created_at", "updated_at")


class SQLiteFinanceBackend(FinanceBackend):
    """
    On-device backend storing entities in SQLite.

    Lists are returned newest first: by `date` for transactions, by
    `created_at` for everything else.
    """

    def __init__(
        self,
        db_path: Optional[Path | str] = None,
        settings: Optional[LocalDatabaseSettings] = None,
    ):
        if db_path is None:
            db_path = (settings or get_settings().database).path
        self.db_path = str(db_path)
        self.conn: Optional[sqlite3.Connection] = None
        self._initialize_db()

    def _initialize_db(self) -> None:
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path, isolation_level=None)
            if self.db_path != ":memory:":
                self.conn.execute("PRAGMA journal_mode=WAL")
            for table in COLLECTION_MODELS:
                self.conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} ("
                    "id TEXT PRIMARY KEY, "
                    "sort_key TEXT NOT NULL, "
                    "data TEXT NOT NULL)"
                )
        except sqlite3.Error as e:
            raise BackendError(f"Failed to open local database {self.db_path}: {e}") from e

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise BackendError("Local database is closed")
        return self.conn

    # ------------------------------------------------------------------
    # FinanceBackend
    # ------------------------------------------------------------------

    async def fetch_collection(self, collection: str) -> list[Entity]:
        model = self.model_for(collection)
        rows = self._execute(
            f"SELECT data FROM {collection} ORDER BY sort_key DESC, rowid DESC"
        ).fetchall()
        return [self._to_entity(model, json.loads(data)) for (data,) in rows]

    async def create(self, collection: str, data: Mapping[str, Any]) -> Entity:
        model = self.model_for(collection)
        now = utc_now()
        fields = {
            key: value
            for key, value in self._field_names(model, data).items()
            if key not in MANAGED_FIELDS
        }
        entity = self._to_entity(
            model,
            {**fields, "id": uuid.uuid4().hex, "created_at": now, "updated_at": now},
        )
        self._write(collection, entity)
        return entity

    async def update(
        self,
        collection: str,
        entity_id: str,
        changes: Mapping[str, Any],
    ) -> Entity:
        model = self.model_for(collection)
        existing = self._get(collection, entity_id)
        if existing is None:
            raise BackendNotFoundError(f"{collection} entity not found: {entity_id}")

        merged = existing.model_dump()
        merged.update(
            (key, value)
            for key, value in self._field_names(model, changes).items()
            if key not in MANAGED_FIELDS
        )
        merged["updated_at"] = utc_now()
        entity = self._to_entity(model, merged)
        self._write(collection, entity)
        return entity

    async def delete(self, collection: str, entity_id: str) -> str:
        self.model_for(collection)
        cursor = self._execute(f"DELETE FROM {collection} WHERE id = ?", (entity_id,))
        if cursor.rowcount == 0:
            raise BackendNotFoundError(f"{collection} entity not found: {entity_id}")
        return entity_id

    async def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def import_entities(self, collection: str, entities: Iterable[Entity | dict]) -> int:
        """
        Upsert entities as given, ids and timestamps included.

        Used for seeding default categories and for restoring exports.
        Returns the number of entities written.
        """
        model = self.model_for(collection)
        count = 0
        for item in entities:
            entity = item if isinstance(item, model) else self._to_entity(model, item)
            self._write(collection, entity)
            count += 1
        return count

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._connection().execute(sql, params)
        except sqlite3.Error as e:
            raise BackendError(f"Local database error: {e}") from e

    def _get(self, collection: str, entity_id: str) -> Optional[Entity]:
        row = self._execute(
            f"SELECT data FROM {collection} WHERE id = ?", (entity_id,)
        ).fetchone()
        if row is None:
            return None
        return self._to_entity(self.model_for(collection), json.loads(row[0]))

    def _write(self, collection: str, entity: Entity) -> None:
        self._execute(
            f"INSERT OR REPLACE INTO {collection} (id, sort_key, data) VALUES (?, ?, ?)",
            (
                entity.id,
                _sort_key(entity),
                json.dumps(entity.model_dump(mode="json", by_alias=True)),
            ),
        )

    @staticmethod
    def _field_names(model: type[Entity], data: Mapping[str, Any]) -> dict[str, Any]:
        """Map camelCase aliases onto model field names."""
        by_alias = {
            field.alias: name
            for name, field in model.model_fields.items()
            if field.alias
        }
        return {by_alias.get(key, key): value for key, value in data.items()}

    @staticmethod
    def _to_entity(model: type[Entity], raw: Any) -> Entity:
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise BackendValidationError(
                f"Invalid {model.__name__}: {e.error_count()} errors",
                details=e.errors(include_url=False),
            ) from e


def _sort_key(entity: Entity) -> str:
    """UTC ISO timestamp used for newest-first ordering."""
    moment: datetime = entity.date if isinstance(entity, Transaction) else entity.created_at
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()
