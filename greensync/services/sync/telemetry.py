"""
Telemetry Recorder
==================
Appends locally captured sensor readings to their day blocks.

Captures go through the coordinator queue so they never interleave with a
sync run. New samples land in the block for their UTC day; a sample whose
timestamp already exists in the block replaces it.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import Future
from datetime import date
from typing import Iterable, Optional
from uuid import UUID

from greensync.domain.history import HistoryBlock, Sample, merge_samples
from greensync.services.sync.coordinator import SyncCoordinator
from greensync.utils.time import ensure_utc
from infrastructure.database.repositories.history import HistoryRepository

logger = logging.getLogger(__name__)


class TelemetryRecorder:
    def __init__(self, coordinator: SyncCoordinator, history_repo: HistoryRepository) -> None:
        self.coordinator = coordinator
        self.history_repo = history_repo

    def record(
        self,
        sensor_id: UUID,
        location_id: Optional[UUID],
        samples: Iterable[Sample],
    ) -> "Future[int]":
        """Queue *samples* for *sensor_id*; the future resolves to the number of blocks written."""
        normalised = [Sample(ensure_utc(s.timestamp), float(s.value)) for s in samples]
        return self.coordinator.submit(self._append, sensor_id, location_id, normalised)

    def _append(self, sensor_id: UUID, location_id: Optional[UUID], samples: list[Sample]) -> int:
        by_day: dict[date, list[Sample]] = defaultdict(list)
        for sample in samples:
            by_day[sample.timestamp.date()].append(sample)

        blocks = []
        for day, day_samples in sorted(by_day.items()):
            block = self.history_repo.get_block(sensor_id, day)
            if block is None:
                block = HistoryBlock.for_day(sensor_id, location_id, day, day_samples)
            else:
                block.decode()
                block.data = merge_samples(block.data, day_samples)
                if location_id is not None:
                    block.location_id = location_id
                block.encode()
            blocks.append(block)

        self.history_repo.save(blocks)
        logger.debug("Recorded %d samples for sensor %s across %d day(s)", len(samples), sensor_id, len(blocks))
        return len(blocks)
