"""
Sensor History Blocks
=====================
One block holds one calendar day of samples for one sensor.

A block carries two representations of its samples:

- ``raw_data``: the compact encoded form kept at rest (little-endian packed
  ``(int64 microseconds since epoch, float64 value)`` pairs, sorted by time).
- ``data``: the decoded ordered list of :class:`Sample`, or ``None`` when the
  block has not been decoded yet.

Conversion between the two is always explicit (:meth:`HistoryBlock.decode`,
:meth:`HistoryBlock.encode`); reading ``data`` never decodes implicitly.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, NamedTuple
from uuid import UUID

from greensync.domain.exceptions import DecodeError
from greensync.utils.time import end_of_day, ensure_utc, from_epoch_us, to_epoch_us

_SAMPLE = struct.Struct("<qd")


class Sample(NamedTuple):
    """A single timestamped sensor reading."""

    timestamp: datetime
    value: float


def encode_samples(samples: Iterable[Sample]) -> bytes:
    ordered = sorted(samples, key=lambda s: s.timestamp)
    buffer = bytearray(_SAMPLE.size * len(ordered))
    for index, sample in enumerate(ordered):
        _SAMPLE.pack_into(buffer, index * _SAMPLE.size, to_epoch_us(sample.timestamp), float(sample.value))
    return bytes(buffer)


def decode_samples(raw: bytes) -> list[Sample]:
    if len(raw) % _SAMPLE.size:
        raise DecodeError("SensorsHistory", f"raw data length {len(raw)} is not a multiple of {_SAMPLE.size}")
    return [Sample(from_epoch_us(micros), value) for micros, value in _SAMPLE.iter_unpack(raw)]


def merge_samples(local: Iterable[Sample], remote: Iterable[Sample]) -> list[Sample]:
    """Concatenate local and remote samples, deduplicated by timestamp.

    On a timestamp collision the remote reading replaces the local one.
    The result is sorted by timestamp.
    """
    by_time: dict[datetime, Sample] = {}
    for sample in local:
        by_time[sample.timestamp] = sample
    for sample in remote:
        by_time[sample.timestamp] = sample
    return [by_time[key] for key in sorted(by_time)]


@dataclass
class HistoryBlock:
    """One (sensor, day) block of samples."""

    sensor_id: UUID
    location_id: UUID | None
    timestamp: datetime
    uploaded_at: datetime | None = None
    raw_data: bytes = b""
    data: list[Sample] | None = field(default=None, repr=False)

    @classmethod
    def for_day(
        cls,
        sensor_id: UUID,
        location_id: UUID | None,
        day: date,
        samples: Iterable[Sample] = (),
    ) -> "HistoryBlock":
        block = cls(sensor_id=sensor_id, location_id=location_id, timestamp=end_of_day(day))
        block.data = sorted(samples, key=lambda s: s.timestamp)
        block.encode()
        return block

    @property
    def day(self) -> date:
        # UTC date of the marker. Wire and stored timestamps are normalised to UTC,
        # so a block keeps the same key after a round trip through the store.
        return ensure_utc(self.timestamp).date()

    @property
    def key(self) -> tuple[UUID, date]:
        return (self.sensor_id, self.day)

    @property
    def is_decoded(self) -> bool:
        return self.data is not None

    def decode(self) -> list[Sample]:
        """Populate ``data`` from ``raw_data`` and return it."""
        self.data = decode_samples(self.raw_data)
        return self.data

    def encode(self) -> bytes:
        """Populate ``raw_data`` from ``data`` and return it."""
        if self.data is None:
            raise ValueError(f"History block {self.sensor_id}/{self.day} has no decoded data to encode")
        self.data = sorted(self.data, key=lambda s: s.timestamp)
        self.raw_data = encode_samples(self.data)
        return self.raw_data

    def latest_sample_time(self) -> datetime | None:
        if self.data is None:
            raise ValueError(f"History block {self.sensor_id}/{self.day} must be decoded first")
        if not self.data:
            return None
        return max(sample.timestamp for sample in self.data)

    def slice_after(self, instant: datetime) -> "HistoryBlock":
        """New block for the same sensor and day holding only samples newer than *instant*."""
        if self.data is None:
            raise ValueError(f"History block {self.sensor_id}/{self.day} must be decoded first")
        newer = [sample for sample in self.data if sample.timestamp > instant]
        sliced = HistoryBlock(
            sensor_id=self.sensor_id,
            location_id=self.location_id,
            timestamp=self.timestamp,
            uploaded_at=self.uploaded_at,
        )
        sliced.data = newer
        sliced.encode()
        return sliced
