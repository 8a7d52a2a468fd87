"""
Unit tests for payload models.
"""

import json
from datetime import datetime, UTC

import pytest

from datalake_sync.errors import ValidationError
from datalake_sync.models import DumpRecord, LoadRequest, WindowMessage


class TestLoadRequest:
    """Test load request validation."""

    def test_entity_is_kebab_cased(self):
        request = LoadRequest.parse({"entity": "Order Item", "incremental": True})
        assert request.entity == "order-item"
        assert request.incremental is True

    def test_optional_fields_and_aliases(self):
        request = LoadRequest.parse(
            {
                "entity": "order",
                "from": "2026-01-01",
                "to": "2026-01-31T10:00:00Z",
                "limit": 200,
                "maxSizeMB": 5,
                "clientCode": "client1",
                "unknown": "ignored",
            }
        )
        assert request.incremental is False
        assert request.from_ == datetime(2026, 1, 1, tzinfo=UTC)
        assert request.to == datetime(2026, 1, 31, 10, tzinfo=UTC)
        assert request.limit == 200
        assert request.max_size_mb == 5
        assert request.client_code == "client1"

    def test_missing_entity(self):
        with pytest.raises(ValidationError):
            LoadRequest.parse({"incremental": True})

    def test_incremental_must_be_boolean(self):
        with pytest.raises(ValidationError):
            LoadRequest.parse({"entity": "order", "incremental": "yes"})

    def test_json_string_payload(self):
        request = LoadRequest.parse('{"entity": "order", "incremental": true}')
        assert request.entity == "order"

    def test_invalid_json_payload(self):
        with pytest.raises(ValidationError):
            LoadRequest.parse("{not json")


class TestWindowMessage:
    """Test window message validation and serialization."""

    def test_parse_and_payload_round_trip(self):
        body = {
            "entity": "product",
            "incremental": False,
            "from": "2026-01-01T00:00:00.000Z",
            "to": "2026-01-01T23:59:59.999Z",
            "limit": 10,
        }
        message = WindowMessage.parse(json.dumps(body))

        assert message.from_ == "2026-01-01T00:00:00.000Z"
        assert message.load_type == "initial"
        assert message.to_date == datetime(2026, 1, 1, 23, 59, 59, 999000, tzinfo=UTC)
        assert message.to_payload() == body

    @pytest.mark.parametrize(
        "body",
        [
            {"entity": "product", "incremental": True, "from": "2026-01-01"},
            {"entity": "product", "from": "2026-01-01", "to": "2026-01-02"},
            {"entity": "product", "incremental": True, "from": "yesterday", "to": "2026-01-02"},
            {"entity": "product", "incremental": True, "from": "2026-01-03", "to": "2026-01-02"},
            ["not", "an", "object"],
        ],
    )
    def test_invalid_messages(self, body):
        with pytest.raises(ValidationError):
            WindowMessage.parse(body)

    def test_message_is_immutable(self):
        message = WindowMessage(entity="product", incremental=True, from_="2026-01-01", to="2026-01-02")
        with pytest.raises(Exception):
            message.to = "2026-01-03"


class TestDumpRecord:
    """Test NDJSON serialization of dump records."""

    def test_to_line(self):
        record = DumpRecord(
            uid="u-1",
            client_code="client1",
            data={"id": "1", "name": "Café", "dateCreated": datetime(2026, 1, 1, tzinfo=UTC)},
            pushed_at=1769947200000,
        )
        line = record.to_line()

        assert line.endswith(b"\n")
        assert line.count(b"\n") == 1
        parsed = json.loads(line)
        assert parsed["uid"] == "u-1"
        assert parsed["clientCode"] == "client1"
        assert parsed["pushedAt"] == 1769947200000
        assert parsed["data"]["name"] == "Café"
        assert parsed["data"]["dateCreated"].startswith("2026-01-01T00:00:00")
