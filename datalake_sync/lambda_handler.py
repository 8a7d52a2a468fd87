"""
AWS Lambda handlers for the data lake sync.

`load_handler` is invoked by EventBridge Scheduler with a load request and
fans window messages out to the sync queue. `sync_consumer_handler` is the
SQS consumer dumping each window into the raw tier of the data lake.
"""

import json
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Dict, Optional

import boto3

from datalake_sync.config import Config
from datalake_sync.errors import StreamFailure, ValidationError
from datalake_sync.extract.clients import ClientDirectory
from datalake_sync.extract.repository import RepositoryRegistry, get_connection
from datalake_sync.load.coordinator import LoadCoordinator
from datalake_sync.load.dispatcher import BatchDispatcher, SqsPublisher
from datalake_sync.models import LoadRequest
from datalake_sync.raw.dump_engine import StreamDumpEngine
from datalake_sync.settings import EntitySettingsProvider
from datalake_sync.utils.logging_utils import (
    log_error,
    log_progress,
    log_section_complete,
    log_section_start,
)
from datalake_sync.utils.state import WatermarkStore


@dataclass
class Runtime:
    """Collaborators built once per Lambda container."""

    coordinator: LoadCoordinator
    engine: StreamDumpEngine


_runtime: Optional[Runtime] = None


def build_runtime() -> Runtime:
    """
    Wire every component from the environment configuration.

    Raises:
        ValueError: If required configuration is missing
        ConfigurationError: If the settings document is invalid
    """
    log_section_start("Configuration Validation")
    Config.validate()
    settings = EntitySettingsProvider.from_file(Config.DATA_LAKE_SETTINGS_PATH)
    log_section_complete("Configuration Validation", f"Entities: {', '.join(settings.names)}")

    coordinator = LoadCoordinator(
        settings=settings,
        watermarks=WatermarkStore(ClientDirectory(get_connection)),
        dispatcher=BatchDispatcher(SqsPublisher(boto3.client("sqs")), Config.DATA_LAKE_SYNC_SQS_QUEUE_URL),
    )
    engine = StreamDumpEngine(
        repositories=RepositoryRegistry.from_settings(settings, get_connection),
        settings=settings,
        s3_client=boto3.client("s3"),
        bucket=Config.S3_DATA_LAKE_RAW_BUCKET,
        microservice=Config.MICROSERVICE_NAME,
    )
    return Runtime(coordinator=coordinator, engine=engine)


def get_runtime() -> Runtime:
    global _runtime
    if _runtime is None:
        _runtime = build_runtime()
    return _runtime


def _event_payload(event: Dict[str, Any]) -> Any:
    # Scheduler targets wrap the request in {"body": ...}; manual invocations may not
    if isinstance(event, dict) and "body" in event:
        return event["body"]
    return event


def handle_load(event: Dict[str, Any], coordinator: LoadCoordinator) -> Dict[str, Any]:
    """
    Run one load request.

    Args:
        event: Lambda event carrying the load request
        coordinator: Load coordinator to run the request with

    Returns:
        Dict containing status code and per-client results
    """
    run_timestamp = datetime.now(UTC)

    try:
        request = LoadRequest.parse(_event_payload(event))
        summary = coordinator.run(request, now=run_timestamp)
    except ValidationError as e:
        log_error("Data Lake Load", str(e))
        return {
            "statusCode": 400,
            "body": json.dumps({"error": str(e), "run_timestamp": run_timestamp.isoformat()}),
        }
    except Exception as e:
        log_error("Data Lake Load", str(e))
        return {
            "statusCode": 500,
            "body": json.dumps({"error": str(e), "run_timestamp": run_timestamp.isoformat()}),
        }

    return {
        "statusCode": 200,
        "body": json.dumps({"run_timestamp": run_timestamp.isoformat(), **summary}),
    }


def _client_code(record: Dict[str, Any]) -> Optional[str]:
    attribute = (record.get("messageAttributes") or {}).get(Config.CLIENT_CODE_ATTRIBUTE) or {}
    return attribute.get("stringValue")


def handle_sync_records(event: Dict[str, Any], engine: StreamDumpEngine) -> Dict[str, Any]:
    """
    Dump every SQS record of the event.

    Failed dumps are reported as batch item failures so SQS redelivers (and
    eventually dead-letters) only those messages. Invalid messages are
    dropped by the engine and never reported.

    Returns:
        Partial batch response
    """
    failures = []
    for record in event.get("Records", []):
        try:
            engine.process_message(_client_code(record), record.get("body"))
        except StreamFailure:
            # Already logged with tenant/entity/window context by the engine
            failures.append({"itemIdentifier": record["messageId"]})

    if failures:
        log_progress("Data Lake Sync", f"{len(failures)} message(s) left for redelivery")
    return {"batchItemFailures": failures}


def load_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Scheduled entry point of the load function."""
    try:
        runtime = get_runtime()
    except Exception as e:
        log_error("Data Lake Load", str(e))
        return {"statusCode": 500, "body": json.dumps({"error": str(e)})}
    return handle_load(event, runtime.coordinator)


def sync_consumer_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """SQS entry point of the sync consumer."""
    return handle_sync_records(event, get_runtime().engine)
