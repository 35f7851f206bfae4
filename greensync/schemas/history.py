"""
Sensor History Schemas
======================

Wire format of history blocks. On the wire a block carries its decoded
samples in ``Data``; at rest it carries the packed ``raw_data`` instead, so
conversion between the two happens here.
"""

from __future__ import annotations

from typing import Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from greensync.domain.exceptions import DecodeError
from greensync.domain.history import HistoryBlock, Sample
from greensync.schemas.entities import UtcDatetime, wire_alias

HISTORY_TABLE = "SensorsHistory"


class SamplePayload(BaseModel):
    model_config = ConfigDict(alias_generator=wire_alias, populate_by_name=True)

    time_stamp: UtcDatetime = Field(alias="TimeStamp")
    value: float


class HistoryBlockPayload(BaseModel):
    """One (sensor, day) block as exchanged with the API."""

    model_config = ConfigDict(alias_generator=wire_alias, populate_by_name=True, extra="ignore")

    sensor_id: UUID
    location_id: Optional[UUID] = None
    time_stamp: UtcDatetime = Field(alias="TimeStamp")
    uploaded_at: Optional[UtcDatetime] = None
    data: list[SamplePayload] = Field(default_factory=list)

    @field_validator("uploaded_at", mode="after")
    @classmethod
    def _zero_means_never(cls, value):
        # The API serialises "never uploaded" as the minimum date.
        if value is not None and value.year == 1:
            return None
        return value

    def to_block(self) -> HistoryBlock:
        block = HistoryBlock(
            sensor_id=self.sensor_id,
            location_id=self.location_id,
            timestamp=self.time_stamp,
            uploaded_at=self.uploaded_at,
        )
        block.data = sorted((Sample(s.time_stamp, s.value) for s in self.data), key=lambda s: s.timestamp)
        return block

    @classmethod
    def from_block(cls, block: HistoryBlock) -> "HistoryBlockPayload":
        if block.data is None:
            raise ValueError(f"History block {block.sensor_id}/{block.day} must be decoded before serialising")
        return cls(
            sensor_id=block.sensor_id,
            location_id=block.location_id,
            time_stamp=block.timestamp,
            uploaded_at=block.uploaded_at,
            data=[SamplePayload(time_stamp=s.timestamp, value=s.value) for s in block.data],
        )


_PAGE_ADAPTER = TypeAdapter(list[HistoryBlockPayload])


def decode_history_page(raw: str | bytes) -> list[HistoryBlock]:
    """Decode a JSON array of history blocks; blocks come back decoded, not encoded."""
    try:
        payloads = _PAGE_ADAPTER.validate_json(raw)
    except ValidationError as exc:
        raise DecodeError(HISTORY_TABLE, str(exc)) from exc
    return [payload.to_block() for payload in payloads]


def encode_history_blocks(blocks: Sequence[HistoryBlock]) -> str:
    payloads = [HistoryBlockPayload.from_block(block) for block in blocks]
    return _PAGE_ADAPTER.dump_json(payloads, by_alias=True).decode("utf-8")
