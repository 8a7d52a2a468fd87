"""
State store module for managing incremental load watermarks.

Watermarks live in the tenant directory, under each client's settings for
the entity (`settings.<entity>.lastIncrementalLoadDate`).
"""

from datetime import datetime
from typing import List, Optional

from datalake_sync.config import Config
from datalake_sync.models import ClientWatermark
from datalake_sync.utils.dates import format_timestamp, parse_timestamp
from datalake_sync.utils.logging_utils import client_section, log_progress, log_error

WATERMARK_FIELD = "lastIncrementalLoadDate"


def watermark_path(entity: str) -> str:
    return f"settings.{entity}.{WATERMARK_FIELD}"


def _client_watermark(client_code: str, entity: str, raw_value) -> ClientWatermark:
    if not raw_value:
        return ClientWatermark(client_code=client_code, entity=entity)
    try:
        return ClientWatermark(
            client_code=client_code,
            entity=entity,
            last_incremental_load_date=parse_timestamp(raw_value),
        )
    except (AttributeError, TypeError, ValueError) as e:
        log_error(f"State Store - {client_section(client_code, entity)}", f"Unreadable watermark {raw_value!r}: {e}")
        return ClientWatermark(client_code=client_code, entity=entity, invalid_watermark=str(raw_value))


class WatermarkStore:
    """Reads and advances per-tenant, per-entity watermarks."""

    def __init__(self, directory):
        self.directory = directory

    def list_clients(self, entity: str, client_code: Optional[str] = None) -> List[ClientWatermark]:
        """
        Fetch active tenants together with their watermark for an entity.

        Args:
            entity: The entity name (e.g., 'order')
            client_code: Restrict the result to one tenant

        Returns:
            One ClientWatermark per active tenant, ordered by code
        """
        filters = {"status": Config.CLIENT_ACTIVE_STATUS}
        if client_code:
            filters["code"] = client_code

        clients = self.directory.list(entity, filters)

        watermarks = []
        for client in clients:
            raw_value = ((client.get("settings") or {}).get(entity) or {}).get(WATERMARK_FIELD)
            watermarks.append(_client_watermark(client["code"], entity, raw_value))

        log_progress(f"State Store - {entity}", f"Found {len(watermarks)} active client(s)")
        return watermarks

    def update_sync(self, client_code: str, entity: str, timestamp: datetime) -> None:
        """
        Advance the watermark of an entity for one tenant.

        Args:
            client_code: Tenant code
            entity: The entity name
            timestamp: New watermark (end of the last dispatched window)
        """
        value = format_timestamp(timestamp)
        try:
            self.directory.update({watermark_path(entity): value}, {"code": client_code})
        except Exception as e:
            log_error(f"State Store - {client_section(client_code, entity)}", f"Failed to update watermark: {e}")
            raise

        log_progress(
            f"State Store - {client_section(client_code, entity)}",
            f"Updated watermark to: {value}",
        )
