"""
Window planner.

Turns a load request into the ordered sequence of time windows to sync:
a single bounded window after the watermark for incremental loads, or one
window per calendar day for initial loads.
"""

from datetime import datetime
from typing import Iterator, Optional

from datalake_sync.errors import ConfigurationError, ValidationError
from datalake_sync.models import ClientWatermark, EntitySettings, LoadRequest, WindowMessage
from datalake_sync.utils.dates import ONE_DAY, end_of_day, format_timestamp, start_of_day


class WindowPlanner:
    """Stateless; every call to plan() returns a fresh lazy sequence."""

    def plan(
        self,
        request: LoadRequest,
        watermark: Optional[ClientWatermark],
        entity_settings: Optional[EntitySettings],
        now: datetime,
    ) -> Iterator[WindowMessage]:
        """
        Plan the windows of a load request.

        Args:
            request: Validated load request
            watermark: Tenant watermark for the entity (incremental only)
            entity_settings: Settings of the requested entity, if configured
            now: Planning time; incremental windows never end after it

        Returns:
            Iterator of WindowMessage in ascending time order. An incremental
            load yields at most one window, and none when the watermark is
            already at or after `now`.

        Raises:
            ConfigurationError: Incremental load with an unreadable watermark, or
                with no watermark and no initialLoadDate
            ValidationError: Initial load without `from`, or with `from` after `to`
        """
        if request.incremental:
            return self._incremental(request, watermark, entity_settings, now)
        return self._initial(request, now)

    def _incremental(
        self,
        request: LoadRequest,
        watermark: Optional[ClientWatermark],
        entity_settings: Optional[EntitySettings],
        now: datetime,
    ) -> Iterator[WindowMessage]:
        if watermark and watermark.invalid_watermark:
            raise ConfigurationError(
                f'Invalid lastIncrementalLoadDate "{watermark.invalid_watermark}" for entity "{request.entity}"'
            )
        from_date = watermark.last_incremental_load_date if watermark else None
        if from_date is None:
            from_date = entity_settings.initial_load_date if entity_settings else None
        if from_date is None:
            raise ConfigurationError(f'Missing initialLoadDate for entity "{request.entity}"')

        return self._incremental_window(request, from_date, now)

    def _incremental_window(self, request: LoadRequest, from_date: datetime, now: datetime) -> Iterator[WindowMessage]:
        # A watermark already at (or past) now leaves nothing to sync
        if from_date >= now:
            return

        to_date = min(from_date + ONE_DAY, now)
        yield WindowMessage(
            entity=request.entity,
            incremental=True,
            from_=format_timestamp(from_date),
            to=format_timestamp(to_date),
        )

    def _initial(self, request: LoadRequest, now: datetime) -> Iterator[WindowMessage]:
        if request.from_ is None:
            raise ValidationError("From date is required for initial load")

        from_date = start_of_day(request.from_)
        to_date = end_of_day(request.to or now)
        if from_date > to_date:
            raise ValidationError(
                f"Initial load range is empty: from {format_timestamp(from_date)} is after to {format_timestamp(to_date)}"
            )

        return self._daily_windows(request, from_date, to_date)

    def _daily_windows(self, request: LoadRequest, from_date: datetime, to_date: datetime) -> Iterator[WindowMessage]:
        current = from_date
        while current <= to_date:
            yield WindowMessage(
                entity=request.entity,
                incremental=False,
                from_=format_timestamp(start_of_day(current)),
                to=format_timestamp(end_of_day(current)),
                limit=request.limit,
                max_size_mb=request.max_size_mb,
            )
            current += ONE_DAY
