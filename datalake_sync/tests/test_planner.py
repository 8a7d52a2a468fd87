"""
Unit tests for the window planner.
"""

from datetime import datetime, timedelta, UTC

import pytest

from datalake_sync.errors import ConfigurationError, ValidationError
from datalake_sync.load.planner import WindowPlanner
from datalake_sync.models import ClientWatermark, EntitySettings, LoadRequest


def _watermark(value=None):
    return ClientWatermark(client_code="client1", entity="order", last_incremental_load_date=value)


class TestIncrementalPlan:
    """Test single-window planning after the watermark."""

    def setup_method(self):
        self.planner = WindowPlanner()
        self.request = LoadRequest.parse({"entity": "order", "incremental": True})
        self.settings = EntitySettings(name="order", initialLoadDate="2025-01-01T00:00:00")

    def test_no_watermark_uses_initial_load_date(self, fixed_now):
        windows = list(self.planner.plan(self.request, _watermark(), self.settings, fixed_now))

        assert len(windows) == 1
        assert windows[0].incremental is True
        assert windows[0].from_ == "2025-01-01T00:00:00.000Z"
        assert windows[0].to == "2025-01-02T00:00:00.000Z"

    def test_watermark_takes_precedence(self, fixed_now):
        watermark = _watermark(datetime(2026, 1, 15, 6, 30, tzinfo=UTC))
        windows = list(self.planner.plan(self.request, watermark, self.settings, fixed_now))

        assert windows[0].from_ == "2026-01-15T06:30:00.000Z"
        assert windows[0].to == "2026-01-16T06:30:00.000Z"

    def test_window_is_clipped_to_now(self, fixed_now):
        watermark = _watermark(fixed_now - timedelta(hours=2))
        windows = list(self.planner.plan(self.request, watermark, self.settings, fixed_now))

        assert windows[0].to_date == fixed_now
        assert windows[0].to_date - windows[0].from_date <= timedelta(days=1)

    def test_watermark_at_now_yields_nothing(self, fixed_now):
        windows = list(self.planner.plan(self.request, _watermark(fixed_now), self.settings, fixed_now))
        assert windows == []

    def test_missing_initial_load_date(self, fixed_now):
        with pytest.raises(ConfigurationError, match="initialLoadDate"):
            self.planner.plan(self.request, _watermark(), EntitySettings(name="order"), fixed_now)

    def test_unreadable_watermark_does_not_fall_back(self, fixed_now):
        watermark = ClientWatermark(client_code="client1", entity="order", invalid_watermark="not-a-date")

        with pytest.raises(ConfigurationError, match="not-a-date"):
            self.planner.plan(self.request, watermark, self.settings, fixed_now)

    def test_missing_entity_settings(self, fixed_now):
        with pytest.raises(ConfigurationError):
            self.planner.plan(self.request, None, None, fixed_now)


class TestInitialPlan:
    """Test day-by-day planning of initial loads."""

    def setup_method(self):
        self.planner = WindowPlanner()

    def test_from_is_required(self, fixed_now):
        request = LoadRequest.parse({"entity": "order"})
        with pytest.raises(ValidationError, match="From date is required"):
            self.planner.plan(request, None, None, fixed_now)

    def test_one_window_per_day(self, fixed_now):
        request = LoadRequest.parse(
            {"entity": "order", "from": "2026-01-01T15:00:00", "to": "2026-02-20T01:00:00"}
        )
        windows = list(self.planner.plan(request, None, None, fixed_now))

        assert len(windows) == 51
        assert windows[0].from_ == "2026-01-01T00:00:00.000Z"
        assert windows[0].to == "2026-01-01T23:59:59.999Z"
        assert windows[-1].from_ == "2026-02-20T00:00:00.000Z"
        assert windows[-1].to == "2026-02-20T23:59:59.999Z"
        assert all(window.incremental is False for window in windows)

    def test_windows_are_contiguous_and_ascending(self, fixed_now):
        request = LoadRequest.parse({"entity": "order", "from": "2026-01-01T00:00:00", "to": "2026-01-10T00:00:00"})
        windows = list(self.planner.plan(request, None, None, fixed_now))

        for previous, current in zip(windows, windows[1:]):
            assert previous.to_date < current.from_date
            assert current.from_date - previous.to_date == timedelta(milliseconds=1)

    def test_to_defaults_to_now(self, fixed_now):
        request = LoadRequest.parse({"entity": "order", "from": "2026-01-30T00:00:00"})
        windows = list(self.planner.plan(request, None, None, fixed_now))

        assert [window.from_[:10] for window in windows] == ["2026-01-30", "2026-01-31", "2026-02-01"]

    def test_limit_and_max_size_are_copied(self, fixed_now):
        request = LoadRequest.parse(
            {"entity": "order", "from": "2026-01-01T00:00:00", "to": "2026-01-02T00:00:00", "limit": 100, "maxSizeMB": 10}
        )
        windows = list(self.planner.plan(request, None, None, fixed_now))

        assert [window.to_payload()["limit"] for window in windows] == [100, 100]
        assert [window.to_payload()["maxSizeMB"] for window in windows] == [10, 10]

    def test_optional_fields_omitted_when_absent(self, fixed_now):
        request = LoadRequest.parse({"entity": "order", "from": "2026-01-01T00:00:00", "to": "2026-01-01T00:00:00"})
        payload = list(self.planner.plan(request, None, None, fixed_now))[0].to_payload()

        assert payload == {
            "entity": "order",
            "incremental": False,
            "from": "2026-01-01T00:00:00.000Z",
            "to": "2026-01-01T23:59:59.999Z",
        }

    def test_empty_range(self, fixed_now):
        request = LoadRequest.parse({"entity": "order", "from": "2026-01-05T00:00:00", "to": "2026-01-01T00:00:00"})
        with pytest.raises(ValidationError):
            self.planner.plan(request, None, None, fixed_now)

    def test_plan_is_restartable(self, fixed_now):
        request = LoadRequest.parse({"entity": "order", "from": "2026-01-01T00:00:00", "to": "2026-01-03T00:00:00"})

        first = [window.to_payload() for window in self.planner.plan(request, None, None, fixed_now)]
        second = [window.to_payload() for window in self.planner.plan(request, None, None, fixed_now)]

        assert first == second
        assert len(first) == 3
