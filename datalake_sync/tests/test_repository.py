"""
Unit tests for store access: entity repositories and the tenant directory.
"""

from datetime import datetime, UTC
from unittest.mock import MagicMock

import pytest
from psycopg2.extras import RealDictCursor

from datalake_sync.errors import ConfigurationError
from datalake_sync.extract.clients import ClientDirectory
from datalake_sync.extract.repository import PostgresEntityRepository, RepositoryRegistry
from datalake_sync.models import EntitySettings
from datalake_sync.settings import EntitySettingsProvider


def _connection(rows=None, rowcount=1):
    conn = MagicMock()
    cursor = conn.cursor.return_value.__enter__.return_value
    cursor.__iter__.return_value = iter(rows or [])
    cursor.fetchall.return_value = rows or []
    cursor.rowcount = rowcount
    return conn, cursor


class TestPostgresEntityRepository:
    """Test streaming reads and updates."""

    def test_query_stream_uses_named_cursor(self):
        conn, cursor = _connection([{"_id": 1, "code": "a"}, {"_id": 2, "code": "b"}])
        repository = PostgresEntityRepository(lambda: conn, "orders", schema="client1")
        date_from = datetime(2026, 1, 1, tzinfo=UTC)
        date_to = datetime(2026, 1, 2, tzinfo=UTC)

        rows = list(
            repository.query_stream(
                {"dateModifiedFrom": date_from, "dateModifiedTo": date_to},
                {"dateCreated": "asc"},
                250,
            )
        )

        assert rows == [{"_id": 1, "code": "a"}, {"_id": 2, "code": "b"}]
        conn.cursor.assert_called_once_with(name="dump_orders", cursor_factory=RealDictCursor)
        assert cursor.itersize == 250
        assert cursor.execute.call_args.args[1] == [date_from, date_to]
        conn.close.assert_called_once()

    def test_query_stream_is_lazy(self):
        connect = MagicMock()
        repository = PostgresEntityRepository(connect, "orders")

        repository.query_stream({}, {}, 10)

        connect.assert_not_called()

    def test_query_stream_closes_connection_on_error(self):
        conn, cursor = _connection()
        cursor.execute.side_effect = RuntimeError("syntax error")
        repository = PostgresEntityRepository(lambda: conn, "orders")

        with pytest.raises(RuntimeError):
            list(repository.query_stream({}, {"dateCreated": "asc"}, 10))

        conn.close.assert_called_once()

    def test_update(self):
        conn, cursor = _connection(rowcount=3)
        repository = PostgresEntityRepository(lambda: conn, "orders")

        assert repository.update({"status": "done"}, {"code": "a"}) == 3
        assert cursor.execute.call_args.args[1] == ["done", "a"]

    def test_update_requires_values(self):
        repository = PostgresEntityRepository(MagicMock(), "orders")
        with pytest.raises(ValueError):
            repository.update({}, {"code": "a"})


class TestRepositoryRegistry:
    """Test entity to repository resolution."""

    def test_from_settings(self):
        connect = MagicMock()
        settings = EntitySettingsProvider(
            [EntitySettings(name="order-item"), EntitySettings(name="product", table="catalog", idField="sku")]
        )
        registry = RepositoryRegistry.from_settings(settings, connect)

        order_items = registry.get("Order Item", "client1")
        products = registry.get("product", "client2")

        assert isinstance(order_items, PostgresEntityRepository)
        assert (order_items.schema, order_items.table, order_items.id_field) == ("client1", "order_item", "_id")
        assert (products.schema, products.table, products.id_field) == ("client2", "catalog", "sku")
        assert "product" in registry

    def test_unknown_entity(self):
        with pytest.raises(ConfigurationError):
            RepositoryRegistry().get("order", "client1")


class TestClientDirectory:
    """Test the tenant directory."""

    def test_list_returns_entity_settings(self):
        conn, cursor = _connection(
            [
                {"code": "client1", "entity_settings": {"lastIncrementalLoadDate": "2026-01-01T00:00:00.000Z"}},
                {"code": "client2", "entity_settings": None},
            ]
        )
        directory = ClientDirectory(lambda: conn)

        clients = directory.list("order", {"status": "active"})

        assert clients == [
            {"code": "client1", "settings": {"order": {"lastIncrementalLoadDate": "2026-01-01T00:00:00.000Z"}}},
            {"code": "client2", "settings": {}},
        ]
        assert cursor.execute.call_args.args[1] == ["order", "active"]
        assert directory.table == "clients"

    def test_update_nested_setting(self):
        conn, cursor = _connection()
        directory = ClientDirectory(lambda: conn)

        directory.update(
            {"settings.order.lastIncrementalLoadDate": "2026-01-02T00:00:00.000Z"}, {"code": "client1"}
        )

        assert cursor.execute.call_args.args[1] == [
            "order",
            "order",
            "lastIncrementalLoadDate",
            "2026-01-02T00:00:00.000Z",
            "client1",
        ]

    def test_update_rejects_unknown_path(self):
        directory = ClientDirectory(MagicMock())
        with pytest.raises(ValueError):
            directory.update({"meta.order": "x"}, {"code": "client1"})
