"""
Load coordinator (producer side).

For every active tenant, plans the windows of a load request, dispatches
them to the sync queue in bounded batches and, for incremental loads,
advances the tenant watermark once the dispatch is confirmed.
"""

from datetime import datetime, UTC
from typing import Any, Dict, Optional, Tuple

from datalake_sync.config import Config
from datalake_sync.load.dispatcher import BatchDispatcher
from datalake_sync.load.planner import WindowPlanner
from datalake_sync.models import ClientWatermark, EntitySettings, LoadRequest
from datalake_sync.settings import EntitySettingsProvider
from datalake_sync.utils.logging_utils import (
    client_section,
    log_error,
    log_progress,
    log_section_complete,
    log_section_start,
)
from datalake_sync.utils.state import WatermarkStore


class LoadCoordinator:
    """Processes tenants strictly one at a time."""

    def __init__(
        self,
        settings: EntitySettingsProvider,
        watermarks: WatermarkStore,
        dispatcher: BatchDispatcher,
        planner: Optional[WindowPlanner] = None,
    ):
        self.settings = settings
        self.watermarks = watermarks
        self.dispatcher = dispatcher
        self.planner = planner or WindowPlanner()

    def run(self, request: LoadRequest, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run a load request for every matching active tenant.

        Args:
            request: Validated load request
            now: Planning time (defaults to the current UTC time)

        Returns:
            Dict with the load type and a result dict per tenant

        Raises:
            ValidationError: If the request cannot be planned for any tenant
        """
        now = now or datetime.now(UTC)
        load_type = "incremental" if request.incremental else "initial"

        if not request.incremental:
            # Request-level checks (missing or inverted range) abort the whole run
            self.planner.plan(request, None, None, now)

        entity_settings = self.settings.get(request.entity)

        log_section_start(f"Data Lake Load - {request.entity} ({load_type})")

        clients = self.watermarks.list_clients(request.entity, request.client_code)

        results = {}
        for client in clients:
            client_code, result = self.process_client(request, client, entity_settings, now)
            results[client_code] = result

        failed = sum(1 for result in results.values() if result["status"] in ("error", "dispatch_failed"))
        log_section_complete(
            f"Data Lake Load - {request.entity} ({load_type})",
            f"{len(results)} client(s) processed, {failed} failed",
        )

        return {"entity": request.entity, "load_type": load_type, "clients": results}

    def process_client(
        self,
        request: LoadRequest,
        client: ClientWatermark,
        entity_settings: Optional[EntitySettings],
        now: datetime,
    ) -> Tuple[str, Dict[str, Any]]:
        """
        Process a single tenant. Failures are logged and reported in the
        result instead of being raised, so the next tenant still runs.

        Returns:
            Tuple of (client_code, result_dict)
        """
        section = client_section(client.client_code, request.entity)
        try:
            if request.incremental:
                result = self._incremental_load(request, client, entity_settings, now)
            else:
                result = self._initial_load(request, client, now)
        except Exception as e:
            log_error(section, e)
            result = {"status": "error", "error": str(e)}

        return client.client_code, result

    def _incremental_load(
        self,
        request: LoadRequest,
        client: ClientWatermark,
        entity_settings: Optional[EntitySettings],
        now: datetime,
    ) -> Dict[str, Any]:
        windows = list(self.planner.plan(request, client, entity_settings, now))
        section = client_section(client.client_code, request.entity)

        if not windows:
            log_progress(section, "Watermark is up to date, nothing to sync")
            return {"status": "up_to_date", "windows": 0}

        if not self.dispatcher.dispatch(client.client_code, windows):
            return {"status": "dispatch_failed", "windows": len(windows)}

        last_to = windows[-1].to_date
        self.watermarks.update_sync(client.client_code, request.entity, last_to)
        return {"status": "success", "windows": len(windows), "watermark": windows[-1].to}

    def _initial_load(self, request: LoadRequest, client: ClientWatermark, now: datetime) -> Dict[str, Any]:
        section = client_section(client.client_code, request.entity)
        log_progress(section, "Starting Initial Load")

        total_windows = 0
        batches = 0
        failed_batches = 0

        batch = []
        for window in self.planner.plan(request, client, None, now):
            batch.append(window)
            if len(batch) == Config.MAX_BATCH_MESSAGES:
                batches += 1
                total_windows += len(batch)
                if not self.dispatcher.dispatch(client.client_code, batch):
                    failed_batches += 1
                batch = []

        if batch:
            batches += 1
            total_windows += len(batch)
            if not self.dispatcher.dispatch(client.client_code, batch):
                failed_batches += 1

        log_progress(
            section,
            f"Initial Load completed - {total_windows} window(s) in {batches} batch(es), {failed_batches} failed",
        )

        return {
            "status": "dispatch_failed" if failed_batches else "success",
            "windows": total_windows,
            "batches": batches,
            "failed_batches": failed_batches,
        }
