"""
Tenant directory backed by the clients table.

Client rows carry a JSONB `settings` column where each entity keeps its own
subtree (e.g. `settings.order.lastIncrementalLoadDate`).
"""

from typing import Any, Dict, List, Optional

from psycopg2 import sql
from psycopg2.extras import RealDictCursor

from datalake_sync.config import Config
from datalake_sync.extract.repository import ConnectionFactory, PostgresEntityRepository, build_where


class ClientDirectory(PostgresEntityRepository):
    """Lists active tenants and persists their per-entity settings."""

    def __init__(self, connect: ConnectionFactory, table: Optional[str] = None):
        super().__init__(connect, table or Config.CLIENTS_TABLE, id_field="code")

    def list(self, entity: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Fetch tenants with the settings subtree of one entity.

        Args:
            entity: Entity whose settings subtree is fetched
            filters: Equality filters, e.g. {"status": "active", "code": "client1"}

        Returns:
            List of {"code": ..., "settings": {entity: {...}}} dicts
        """
        where, params = build_where(filters)
        query = (
            sql.SQL("SELECT code, settings -> {} AS entity_settings FROM {}").format(
                sql.Placeholder(), self.relation
            )
            + where
            + sql.SQL(" ORDER BY code")
        )

        conn = self.connect()
        try:
            with conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                    cursor.execute(query, [entity, *params])
                    rows = cursor.fetchall()
        finally:
            conn.close()

        return [
            {
                "code": row["code"],
                "settings": {entity: row["entity_settings"]} if row["entity_settings"] else {},
            }
            for row in rows
        ]

    def update(self, values: Dict[str, Any], filters: Dict[str, Any]) -> int:
        """
        Update client rows. Dotted keys (`settings.<entity>.<field>`) are merged
        into the JSONB settings column; other keys are plain columns.
        """
        plain = {key: value for key, value in values.items() if "." not in key}
        nested = {key: value for key, value in values.items() if "." in key}

        updated = 0
        if plain:
            updated = super().update(plain, filters)

        for path, value in nested.items():
            updated = self._merge_setting(path, value, filters)
        return updated

    def _merge_setting(self, path: str, value: Any, filters: Dict[str, Any]) -> int:
        parts = path.split(".")
        if len(parts) != 3 or parts[0] != "settings":
            raise ValueError(f"Unsupported settings path: {path}")
        _, entity, field = parts

        where, params = build_where(filters)
        query = (
            sql.SQL(
                "UPDATE {} SET settings = jsonb_set("
                "COALESCE(settings, '{{}}'::jsonb), ARRAY[{}], "
                "COALESCE(settings -> {}, '{{}}'::jsonb) || jsonb_build_object({}, {}::text), true)"
            ).format(
                self.relation,
                sql.Placeholder(),
                sql.Placeholder(),
                sql.Placeholder(),
                sql.Placeholder(),
            )
            + where
        )

        conn = self.connect()
        try:
            with conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, [entity, entity, field, value, *params])
                    return cursor.rowcount
        finally:
            conn.close()
