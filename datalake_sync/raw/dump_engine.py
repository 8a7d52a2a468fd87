"""
Stream dump engine (consumer side).

Dumps one window of one entity for one tenant into the raw tier: rows are
streamed from the operational store, wrapped into DumpRecords, serialized as
NDJSON and routed to size-bounded gzip parts, each uploaded by its own
PartUploader.
"""

import enum
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Callable, Dict, List, Optional, Tuple

from datalake_sync.config import Config
from datalake_sync.errors import StreamFailure, ValidationError
from datalake_sync.extract.repository import RepositoryRegistry
from datalake_sync.models import DumpRecord, EntitySettings, WindowMessage, window_bounds
from datalake_sync.raw.uploader import PartUploader
from datalake_sync.settings import EntitySettingsProvider
from datalake_sync.utils.dates import epoch_millis
from datalake_sync.utils.logging_utils import client_section, log_error, log_progress

UploaderFactory = Callable[[ThreadPoolExecutor, str], PartUploader]


class DumpState(enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    WRITING = "writing"
    ROTATING = "rotating"
    DRAINING = "draining"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PartState:
    """Rotation bookkeeping of one dump invocation."""

    part_index: int = 0
    current_bytes: int = 0
    open_part: Optional[PartUploader] = None
    pending: List[Tuple[str, Future]] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.open_part is not None


@dataclass
class DumpResult:
    """Summary of a completed dump."""

    client_code: str
    entity: str
    pushed_at: Optional[int] = None
    records: int = 0
    keys: List[str] = field(default_factory=list)
    state: DumpState = DumpState.IDLE


def normalize_row(row: Dict[str, Any], id_field: str) -> Dict[str, Any]:
    """
    Expose the native identifier as `id` and drop the internal field.

    Raises:
        StreamFailure: If the row has no identifier.
    """
    data = dict(row)
    if id_field not in data:
        raise StreamFailure(f"Row is missing identifier field '{id_field}'")
    data["id"] = str(data.pop(id_field))
    return data


class StreamDumpEngine:
    """
    Processes window messages one at a time.

    Each call to process_message owns its cursor, its open part and the set
    of pending uploads; nothing is shared between invocations.
    """

    def __init__(
        self,
        repositories: RepositoryRegistry,
        settings: EntitySettingsProvider,
        s3_client,
        bucket: str,
        microservice: str,
        *,
        max_concurrent_uploads: int = Config.MAX_CONCURRENT_UPLOADS,
        uploader_factory: Optional[UploaderFactory] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.repositories = repositories
        self.settings = settings
        self.s3_client = s3_client
        self.bucket = bucket
        self.microservice = microservice
        self.max_concurrent_uploads = max_concurrent_uploads
        self.uploader_factory = uploader_factory or self._default_uploader
        self.clock = clock

    def _default_uploader(self, executor: ThreadPoolExecutor, section: str) -> PartUploader:
        return PartUploader(self.s3_client, self.bucket, executor, section)

    def process_message(self, client_code: Optional[str], body: Any) -> DumpResult:
        """
        Dump the window described by an inbound message.

        Invalid messages are logged and dropped (COMPLETED with no effect).

        Args:
            client_code: Tenant the message belongs to
            body: Raw message body (JSON string or dict)

        Returns:
            DumpResult of the invocation

        Raises:
            StreamFailure: On any cursor, serialization or upload error
        """
        try:
            if not client_code:
                raise ValidationError("Message has no client code attribute")
            message = WindowMessage.parse(body)
        except ValidationError as e:
            log_error(f"[{client_code or 'unknown'}] Invalid record", f"{e} - body: {body!r}")
            return DumpResult(client_code=client_code or "", entity="", state=DumpState.COMPLETED)

        return self.dump(client_code, message)

    def dump(self, client_code: str, message: WindowMessage) -> DumpResult:
        section = client_section(client_code, message.entity)
        result = DumpResult(client_code=client_code, entity=message.entity)

        try:
            repository = self.repositories.get(message.entity, client_code)
        except Exception as e:
            error = StreamFailure(f"Unable to resolve repository for '{message.entity}': {e}")
            error.__cause__ = e
            self._log_failure(section, message, error)
            raise error

        entity_settings = self.settings.get(message.entity) or EntitySettings(name=message.entity)

        run_at = self.clock()
        result.pushed_at = epoch_millis(run_at)
        prefix = Config.get_raw_key_prefix(
            self.microservice, message.entity, message.incremental, client_code, run_at
        )
        max_size_bytes = Config.max_size_bytes(message.max_size_mb)

        date_field = "dateModified" if message.incremental else "dateCreated"
        filters = {
            f"{date_field}From": message.from_date,
            f"{date_field}To": message.to_date,
        }

        log_progress(section, f"Starting to dump - {message.load_type} {window_bounds(message)}")

        state = PartState()
        executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent_uploads, thread_name_prefix="part-upload"
        )
        result.state = DumpState.STREAMING

        rows = None
        try:
            rows = repository.query_stream(
                filters,
                {"dateCreated": "asc"},
                message.limit or Config.DEFAULT_BATCH_SIZE,
                entity_settings.fields,
            )

            for row in rows:
                line = DumpRecord(
                    uid=str(uuid.uuid4()),
                    client_code=client_code,
                    data=normalize_row(row, entity_settings.id_field),
                    pushed_at=result.pushed_at,
                ).to_line()

                if not state.is_open or state.current_bytes + len(line) > max_size_bytes:
                    result.state = DumpState.ROTATING
                    self._rotate(state, executor, section, prefix, message, result.pushed_at)

                result.state = DumpState.WRITING
                state.current_bytes += len(line)
                state.open_part.write(line)
                result.records += 1

            result.state = DumpState.DRAINING
            self._close_open_part(state)
            for key, future in state.pending:
                future.result()
                result.keys.append(key)

        except Exception as e:
            result.state = DumpState.FAILED
            if hasattr(rows, "close"):
                rows.close()
            if state.open_part is not None:
                state.open_part.abort()
                state.open_part = None
            executor.shutdown(wait=False)

            error = e if isinstance(e, StreamFailure) else StreamFailure(str(e))
            if error is not e:
                error.__cause__ = e
            self._log_failure(section, message, error)
            raise error

        executor.shutdown(wait=True)
        result.state = DumpState.COMPLETED
        log_progress(
            section,
            f"Finished dumping {result.records} record(s) into {len(result.keys)} part(s) and uploaded to S3",
        )
        return result

    def _rotate(
        self,
        state: PartState,
        executor: ThreadPoolExecutor,
        section: str,
        prefix: str,
        message: WindowMessage,
        pushed_at: int,
    ) -> None:
        self._close_open_part(state)
        self._raise_failed_uploads(state)

        state.part_index += 1
        state.current_bytes = 0
        key = Config.get_raw_key(prefix, message.from_, pushed_at, state.part_index)

        log_progress(section, f"Starting new S3 upload part {state.part_index} -> {key}")
        state.open_part = self.uploader_factory(executor, section).open(key)

    def _close_open_part(self, state: PartState) -> None:
        if state.open_part is None:
            return
        part, state.open_part = state.open_part, None
        state.pending.append((part.key, part.close()))

    def _raise_failed_uploads(self, state: PartState) -> None:
        for key, future in state.pending:
            if future.done() and not future.cancelled() and future.exception() is not None:
                cause = future.exception()
                error = StreamFailure(f"Upload of {key} failed: {cause}")
                error.__cause__ = cause
                raise error

    def _log_failure(self, section: str, message: WindowMessage, error: Exception) -> None:
        log_error(f"{section} Dump {window_bounds(message)}", error)
