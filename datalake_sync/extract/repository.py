"""
Operational store access.

Connects to PostgreSQL using credentials from AWS Secrets Manager and exposes
each synced entity as a repository that can stream rows through a server-side
cursor and apply updates.
"""

from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor

from datalake_sync.config import Config
from datalake_sync.errors import ConfigurationError
from datalake_sync.utils.naming import kebab_case, table_name

ConnectionFactory = Callable[[], Any]

_ORDER_DIRECTIONS = {"asc": sql.SQL("ASC"), "desc": sql.SQL("DESC")}


def get_db_credentials() -> Dict[str, Any]:
    """
    Retrieve database credentials from AWS Secrets Manager.

    Returns:
        Dict containing database connection parameters

    Raises:
        ConfigurationError: If credentials cannot be retrieved
    """
    try:
        return Config.get_rds_connection_details()
    except ValueError as e:
        raise ConfigurationError(f"Failed to retrieve database credentials: {e}") from e


def get_connection():
    """Open a new connection to the operational store."""
    return psycopg2.connect(**get_db_credentials())


def build_where(filters: Dict[str, Any]) -> Tuple[sql.Composable, List[Any]]:
    """
    Translate repository filters into a WHERE clause.

    `<field>From` becomes `field >= value`, `<field>To` becomes
    `field <= value`, anything else is an equality match.

    Returns:
        Tuple of (composable clause, positional parameters)
    """
    conditions = []
    params: List[Any] = []
    for key, value in filters.items():
        if key.endswith("From"):
            column, operator = key[: -len("From")], sql.SQL(">=")
        elif key.endswith("To"):
            column, operator = key[: -len("To")], sql.SQL("<=")
        else:
            column, operator = key, sql.SQL("=")
        conditions.append(
            sql.SQL("{} {} {}").format(sql.Identifier(column), operator, sql.Placeholder())
        )
        params.append(value)

    if not conditions:
        return sql.SQL(""), params
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions), params


class EntityRepository:
    """Capability set required from a store-access object."""

    def query_stream(
        self,
        filters: Dict[str, Any],
        order: Dict[str, str],
        batch_size: int,
        fields: Optional[List[str]] = None,
    ) -> Iterator[Dict[str, Any]]:
        raise NotImplementedError

    def update(self, values: Dict[str, Any], filters: Dict[str, Any]) -> int:
        raise NotImplementedError


class PostgresEntityRepository(EntityRepository):
    """
    Entity table in PostgreSQL, optionally scoped to a tenant schema.
    """

    def __init__(
        self,
        connect: ConnectionFactory,
        table: str,
        schema: Optional[str] = None,
        id_field: str = "_id",
    ):
        self.connect = connect
        self.table = table
        self.schema = schema
        self.id_field = id_field

    @property
    def relation(self) -> sql.Composable:
        if self.schema:
            return sql.Identifier(self.schema, self.table)
        return sql.Identifier(self.table)

    def _select_list(self, fields: Optional[List[str]], required: List[str]) -> sql.Composable:
        if not fields:
            return sql.SQL("*")
        columns = list(dict.fromkeys([self.id_field, *required, *fields]))
        return sql.SQL(", ").join(sql.Identifier(column) for column in columns)

    def query_stream(
        self,
        filters: Dict[str, Any],
        order: Dict[str, str],
        batch_size: int,
        fields: Optional[List[str]] = None,
    ) -> Iterator[Dict[str, Any]]:
        """
        Stream matching rows through a named (server-side) cursor.

        Rows are fetched `batch_size` at a time, so the full result set is
        never held in memory.

        Args:
            filters: Repository filters (see build_where)
            order: Mapping of column to 'asc'/'desc'
            batch_size: Rows fetched per round trip
            fields: Optional projection; the identifier is always selected

        Yields:
            One dict per row
        """
        where, params = build_where(filters)
        order_by = sql.SQL("")
        if order:
            order_by = sql.SQL(" ORDER BY ") + sql.SQL(", ").join(
                sql.SQL("{} {}").format(sql.Identifier(column), _ORDER_DIRECTIONS[direction.lower()])
                for column, direction in order.items()
            )
        query = (
            sql.SQL("SELECT {} FROM {}").format(
                self._select_list(fields, list(order)), self.relation
            )
            + where
            + order_by
        )

        conn = self.connect()
        try:
            with conn:
                with conn.cursor(
                    name=f"dump_{self.table}",
                    cursor_factory=RealDictCursor,
                ) as cursor:
                    cursor.itersize = batch_size
                    cursor.execute(query, params)
                    for row in cursor:
                        yield dict(row)
        finally:
            conn.close()

    def update(self, values: Dict[str, Any], filters: Dict[str, Any]) -> int:
        """
        Update matching rows.

        Returns:
            Number of rows updated
        """
        if not values:
            raise ValueError("update requires at least one value")

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder())
            for column in values
        )
        where, params = build_where(filters)
        query = sql.SQL("UPDATE {} SET ").format(self.relation) + assignments + where

        conn = self.connect()
        try:
            with conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, [*values.values(), *params])
                    return cursor.rowcount
        finally:
            conn.close()


RepositoryFactory = Callable[[str], EntityRepository]


class RepositoryRegistry:
    """
    Maps an entity name to a factory building its tenant-scoped repository.
    """

    def __init__(self):
        self._factories: Dict[str, RepositoryFactory] = {}

    def register(self, entity: str, factory: RepositoryFactory) -> None:
        self._factories[kebab_case(entity)] = factory

    def get(self, entity: str, client_code: str) -> EntityRepository:
        """
        Resolve the repository of an entity for one tenant.

        Raises:
            ConfigurationError: If the entity has no registered repository.
        """
        factory = self._factories.get(kebab_case(entity))
        if factory is None:
            raise ConfigurationError(f"No repository registered for entity '{entity}'")
        return factory(client_code)

    def __contains__(self, entity: str) -> bool:
        return kebab_case(entity) in self._factories

    @classmethod
    def from_settings(cls, settings, connect: ConnectionFactory = get_connection) -> "RepositoryRegistry":
        """
        Register one PostgreSQL repository per configured entity.

        Each tenant's rows live in a schema named after its client code.
        """
        registry = cls()
        for entity in settings:
            registry.register(
                entity.name,
                _postgres_factory(connect, entity.table or table_name(entity.name), entity.id_field),
            )
        return registry


def _postgres_factory(connect: ConnectionFactory, table: str, id_field: str) -> RepositoryFactory:
    def factory(client_code: str) -> EntityRepository:
        return PostgresEntityRepository(connect, table, schema=client_code, id_field=id_field)

    return factory
