"""StoreSession staging, tracking and single-transaction save."""

from __future__ import annotations

import logging
import uuid
from datetime import date

import pytest

from conftest import at, make_block, make_location
from greensync.domain.exceptions import RepositoryError
from greensync.domain.history import Sample
from greensync.schemas.entities import Location
from infrastructure.database.session import EntryState, StoreSession

JAN1 = date(2024, 1, 1)


class TestStaging:
    def test_added_rows_are_written_on_save(self, session, entity_repo, history_repo):
        location = make_location()
        block = make_block(uuid.uuid4(), JAN1, [(at(1, 8), 1.0)])
        session.add(location)
        session.add(block)

        assert session.pending_count == 2
        assert entity_repo.get(Location, str(location.id)) is None

        assert session.save() == 2
        assert entity_repo.get(Location, str(location.id)) == location
        assert history_repo.get_block(block.sensor_id, JAN1).raw_data == block.raw_data
        assert session.pending_count == 0
        assert session.state_of(location) is EntryState.UNCHANGED

    def test_saved_rows_stay_tracked_for_lookups(self, session):
        location = make_location()
        session.add(location)
        session.save()

        assert session.find_entity(Location, str(location.id)) is location

    def test_detached_reads_have_no_effect_until_staged(self, session, entity_repo):
        location = make_location("Before")
        entity_repo.save([location])

        loaded = session.find_entity(Location, str(location.id))
        loaded.name = "After"
        session.save()
        assert entity_repo.get(Location, str(location.id)).name == "Before"

        session.update(loaded)
        session.save()
        assert entity_repo.get(Location, str(location.id)).name == "After"

    def test_second_instance_for_same_key_is_rejected(self, session):
        location = make_location()
        session.add(location)

        with pytest.raises(RepositoryError):
            session.add(location.model_copy())
        with pytest.raises(RepositoryError):
            session.update(location.model_copy())

    def test_detach_then_replace(self, session, history_repo):
        first = make_block(uuid.uuid4(), JAN1, [(at(1, 8), 1.0)])
        second = make_block(first.sensor_id, JAN1, [(at(1, 9), 2.0)])
        session.add(first)

        session.detach(first)
        session.add(second)
        session.save()

        assert history_repo.get_block(first.sensor_id, JAN1).decode() == [Sample(at(1, 9), 2.0)]

    def test_update_of_added_row_stays_an_insert(self, session):
        location = make_location()
        session.add(location)
        session.update(location)

        assert session.state_of(location) is EntryState.ADDED


class TestFieldLevelUpdates:
    def test_mark_modified_writes_only_that_field(self, session, history_repo):
        block = make_block(uuid.uuid4(), JAN1, [(at(1, 8), 1.0)])
        history_repo.save([block])
        loaded = history_repo.get_block(block.sensor_id, JAN1)

        loaded.uploaded_at = at(2)
        loaded.raw_data = b""
        session.mark_modified(loaded, "uploaded_at")
        session.save()

        stored = history_repo.get_block(block.sensor_id, JAN1)
        assert stored.uploaded_at == at(2)
        assert stored.raw_data == block.raw_data

    def test_unsupported_partial_field_is_rejected(self, session, history_repo):
        block = make_block(uuid.uuid4(), JAN1, [(at(1, 8), 1.0)])
        history_repo.save([block])
        session.mark_modified(history_repo.get_block(block.sensor_id, JAN1), "location_id")

        with pytest.raises(RepositoryError):
            session.save()


class TestLifecycle:
    def test_discard_drops_pending_changes(self, session, entity_repo):
        location = make_location()
        session.add(location)

        assert session.discard() == 1
        session.save()
        assert entity_repo.get(Location, str(location.id)) is None

    def test_close_discards_and_warns(self, db_handler, entity_repo, caplog):
        location = make_location()
        with caplog.at_level(logging.WARNING, logger="infrastructure.database.session"):
            with StoreSession(db_handler) as session:
                session.add(location)

        assert entity_repo.get(Location, str(location.id)) is None
        assert "discarded" in caplog.text

    def test_closed_session_rejects_staging(self, db_handler):
        session = StoreSession(db_handler)
        session.close()

        with pytest.raises(RepositoryError):
            session.add(make_location())


class TestReadFailures:
    def test_query_errors_surface_as_repository_errors(self, db_handler, session, seed_device):
        seed_device()
        with db_handler.transaction() as conn:
            conn.execute("DROP TABLE SensorsHistory")
            conn.execute("DROP TABLE EntityRecords")

        with pytest.raises(RepositoryError):
            session.history.never_uploaded()
        with pytest.raises(RepositoryError):
            session.entities.devices()
