"""
Pydantic data models for the data lake sync.

Covers the scheduled load request, the window message exchanged through SQS,
per-entity settings, the tenant watermark and the dumped NDJSON record.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from datalake_sync.errors import ValidationError
from datalake_sync.utils.dates import format_timestamp, parse_timestamp
from datalake_sync.utils.naming import kebab_case


class _Payload(BaseModel):
    """Base for JSON payloads received from outside the process."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def parse(cls, payload: Any):
        """
        Validate a raw payload (dict or JSON string).

        Raises:
            ValidationError: If the payload does not match the model.
        """
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invalid {cls.__name__}: body is not valid JSON ({e})") from e
        if not isinstance(payload, dict):
            raise ValidationError(f"Invalid {cls.__name__}: expected an object, got {type(payload).__name__}")
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {cls.__name__}: {e}") from e


class LoadRequest(_Payload):
    """Scheduled (or manual) trigger of the load function."""

    entity: str
    incremental: StrictBool = False
    from_: Optional[datetime] = Field(default=None, alias="from")
    to: Optional[datetime] = None
    limit: Optional[int] = Field(default=None, gt=0)
    max_size_mb: Optional[int] = Field(default=None, alias="maxSizeMB", gt=0)
    client_code: Optional[str] = Field(default=None, alias="clientCode")

    @field_validator("entity")
    @classmethod
    def _kebab_entity(cls, v):
        normalized = kebab_case(v)
        if not normalized:
            raise ValueError("entity must contain at least one alphanumeric character")
        return normalized

    @field_validator("from_", "to")
    @classmethod
    def _utc(cls, v):
        if v is None:
            return v
        return parse_timestamp(v)


class WindowMessage(_Payload):
    """One unit of extraction work, immutable once enqueued."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    entity: str
    incremental: StrictBool
    from_: str = Field(alias="from")
    to: str
    limit: Optional[int] = Field(default=None, gt=0)
    max_size_mb: Optional[int] = Field(default=None, alias="maxSizeMB", gt=0)

    @field_validator("from_", "to")
    @classmethod
    def _timestamp(cls, v):
        parse_timestamp(v)
        return v

    @model_validator(mode="after")
    def _ordered(self):
        if self.from_date > self.to_date:
            raise ValueError(f"from ({self.from_}) is after to ({self.to})")
        return self

    @property
    def from_date(self) -> datetime:
        return parse_timestamp(self.from_)

    @property
    def to_date(self) -> datetime:
        return parse_timestamp(self.to)

    @property
    def load_type(self) -> str:
        return "incremental" if self.incremental else "initial"

    def to_payload(self) -> Dict[str, Any]:
        """Message body as published to the sync queue."""
        return self.model_dump(by_alias=True, exclude_none=True)


class EntitySettings(BaseModel):
    """Static per-entity configuration from the settings document."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    name: str
    initial_load_date: Optional[datetime] = Field(default=None, alias="initialLoadDate")
    frequency_minutes: Optional[int] = Field(default=None, alias="frequency", gt=0)
    fields: Optional[List[str]] = None
    table: Optional[str] = None
    id_field: str = Field(default="_id", alias="idField")

    @field_validator("name")
    @classmethod
    def _kebab_name(cls, v):
        return kebab_case(v)

    @field_validator("initial_load_date")
    @classmethod
    def _utc(cls, v):
        if v is None:
            return v
        return parse_timestamp(v)


class ClientWatermark(BaseModel):
    """Last synced point in time of one entity for one tenant."""

    model_config = ConfigDict(frozen=True)

    client_code: str
    entity: str
    last_incremental_load_date: Optional[datetime] = None
    # Stored value that could not be parsed; fails only this tenant's load
    invalid_watermark: Optional[str] = None


class DumpRecord(BaseModel):
    """One NDJSON line of a raw dump."""

    model_config = ConfigDict(populate_by_name=True)

    uid: str
    client_code: str = Field(alias="clientCode")
    data: Dict[str, Any]
    pushed_at: int = Field(alias="pushedAt")

    def to_line(self) -> bytes:
        """Serialize to a single UTF-8 NDJSON line (newline included)."""
        return self.model_dump_json(by_alias=True).encode("utf-8") + b"\n"


def window_bounds(message: WindowMessage) -> str:
    """Human readable window used in log lines."""
    return f"From {format_timestamp(message.from_date)} To {format_timestamp(message.to_date)}"
