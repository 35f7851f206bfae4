"""Reference table pull (two committed stages) and push-if-changed."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from conftest import T0, at, make_device, make_location
from greensync.domain.exceptions import TransportError
from greensync.enums.sync import SyncErrorKind
from greensync.schemas.entities import (
    CATALOG_TABLES,
    MERGEABLE_TABLES,
    CropType,
    Device,
    Location,
    Parameter,
    Placement,
    encode_entities,
)
from greensync.services.sync.reference_sync import ReferenceTableSyncer
from greensync.utils.time import EPOCH


@pytest.fixture()
def syncer(fake_transport, settings_service, clock):
    return ReferenceTableSyncer(fake_transport, settings_service, clock=clock)


class TestPull:
    def test_clean_pull_requests_every_table_in_dependency_order(self, syncer, session, fake_transport, clock):
        started = clock()

        errors = syncer.pull(session)

        assert errors == []
        expected = [model.table_name for model in CATALOG_TABLES + MERGEABLE_TABLES]
        assert fake_transport.get_names() == expected
        assert syncer.settings.last_successful_get == started

    def test_pull_watermark_is_sampled_at_phase_start(self, session, fake_transport, settings_service, clock):
        class AdvancingTransport(type(fake_transport)):
            def get_table(self, table_name, credentials=None):
                clock.advance(minutes=1)
                return super().get_table(table_name, credentials)

        started = clock()
        syncer = ReferenceTableSyncer(AdvancingTransport(), settings_service, clock=clock)

        assert syncer.pull(session) == []
        assert settings_service.last_successful_get == started

    def test_user_tables_carry_credentials_except_crop_types(self, syncer, session, fake_transport):
        syncer.pull(session)

        credentials = dict(fake_transport.gets)
        assert credentials["Parameters"] is None
        assert credentials["CropTypes"] is None
        assert credentials["Locations"].user_id == "7"
        assert credentials["Devices"].token == "secret-token"

    def test_rows_are_inserted_and_saved(self, syncer, session, fake_transport, entity_repo):
        location = make_location()
        fake_transport.script("Parameters", encode_entities([Parameter(id=1, name="Temperature", unit="C")]))
        fake_transport.script("Locations", encode_entities([location]))

        assert syncer.pull(session) == []

        assert entity_repo.get(Parameter, "1").name == "Temperature"
        assert entity_repo.get(Location, str(location.id)) == location

    def test_catalog_failure_stops_before_user_tables(self, syncer, session, fake_transport, entity_repo):
        fake_transport.script("Placements", encode_entities([Placement(id=3, name="Canopy")]))
        fake_transport.script("Subsystems", TransportError("Subsystems", "HTTP 500"))

        errors = syncer.pull(session)

        assert [(e.kind, e.context) for e in errors] == [(SyncErrorKind.TRANSPORT, "Subsystems")]
        assert "People" not in fake_transport.get_names()
        assert len(entity_repo.list_all(Placement)) == 0
        assert syncer.settings.last_successful_get == EPOCH

    def test_every_catalog_table_is_tried_before_aborting(self, syncer, session, fake_transport):
        fake_transport.script("Parameters", TransportError("Parameters", "timeout"))
        fake_transport.script("SensorTypes", "not json")

        errors = syncer.pull(session)

        assert [e.kind for e in errors] == [SyncErrorKind.TRANSPORT, SyncErrorKind.DECODE]
        assert fake_transport.get_names() == [model.table_name for model in CATALOG_TABLES]

    def test_user_table_failure_keeps_committed_catalog(self, syncer, session, fake_transport, entity_repo):
        fake_transport.script("Parameters", encode_entities([Parameter(id=1, name="Temperature")]))
        fake_transport.script("Locations", encode_entities([make_location()]))
        fake_transport.script("Devices", json.dumps({"unexpected": "object"}))

        errors = syncer.pull(session)

        assert [(e.kind, e.context) for e in errors] == [(SyncErrorKind.DECODE, "Devices")]
        assert len(entity_repo.list_all(Parameter)) == 1
        assert len(entity_repo.list_all(Location)) == 0
        assert syncer.settings.last_successful_get == EPOCH


class TestMerge:
    def test_older_remote_leaves_local_row_unchanged(self, syncer, session, fake_transport, entity_repo):
        local = make_location("Local name", updated_at=at(2))
        entity_repo.save([local])
        remote = local.model_copy(update={"name": "Server name", "updated_at": at(1)})
        fake_transport.script("Locations", encode_entities([remote]))

        assert syncer.pull(session) == []
        assert entity_repo.get(Location, str(local.id)) == local

    def test_equal_timestamp_leaves_local_row_unchanged(self, syncer, session, fake_transport, entity_repo):
        local = make_location("Local name", updated_at=at(2))
        entity_repo.save([local])
        fake_transport.script("Locations", encode_entities([local.model_copy(update={"name": "Server name"})]))

        syncer.pull(session)

        assert entity_repo.get(Location, str(local.id)).name == "Local name"

    def test_newer_remote_replaces_local_row(self, syncer, session, fake_transport, entity_repo):
        local = make_location("Local name", updated_at=at(1))
        entity_repo.save([local])
        remote = local.model_copy(update={"name": "Server name", "updated_at": at(2)})
        fake_transport.script("Locations", encode_entities([remote]))

        syncer.pull(session)

        assert entity_repo.get(Location, str(local.id)) == remote

    def test_crop_type_matched_by_name_is_not_duplicated(self, syncer, session, fake_transport, entity_repo):
        entity_repo.save([CropType(name="Tomato", id=1, created_at=T0)])
        fake_transport.script("CropTypes", encode_entities([CropType(name="Tomato", id=42, created_at=T0)]))

        assert syncer.pull(session) == []

        assert len(entity_repo.list_all(CropType)) == 1
        assert entity_repo.get(CropType, "Tomato").id == 42

    def test_duplicate_rows_in_one_payload_keep_one_copy(self, syncer, session, fake_transport, entity_repo):
        first = make_device("First", updated_at=at(1))
        second = first.model_copy(update={"name": "Second", "updated_at": at(2)})
        fake_transport.script("Devices", encode_entities([first, second]))

        assert syncer.pull(session) == []

        assert len(entity_repo.list_all(Device)) == 1
        assert entity_repo.get(Device, str(first.id)).name == "Second"


class TestPush:
    def test_first_push_sends_every_edited_row(self, syncer, session, fake_transport, entity_repo, clock):
        location = make_location(updated_at=at(1))
        entity_repo.save([location])

        assert syncer.push(session) == []

        assert [name for name, _, _ in fake_transport.posts] == ["Locations"]
        table, payload, credentials = fake_transport.posts[0]
        assert json.loads(payload)[0]["ID"] == str(location.id)
        assert credentials.user_id == "7"
        assert syncer.settings.last_successful_post == clock()

    def test_rows_older_than_watermark_are_not_sent(self, syncer, session, fake_transport, entity_repo):
        entity_repo.save([make_location(updated_at=at(1)), make_device(updated_at=at(3))])
        syncer.settings.last_successful_post = at(2)

        syncer.push(session)

        assert [name for name, _, _ in fake_transport.posts] == ["Devices"]

    def test_nothing_changed_posts_nothing_and_still_advances(self, syncer, session, fake_transport, clock):
        assert syncer.push(session) == []

        assert fake_transport.posts == []
        assert syncer.settings.last_successful_post == clock()

    def test_crop_types_are_selected_by_creation_time(self, syncer, session, fake_transport, entity_repo):
        entity_repo.save([CropType(name="Old", created_at=at(1)), CropType(name="New", created_at=at(5))])
        syncer.settings.last_successful_post = at(2)

        syncer.push(session)

        (table, payload, _), = fake_transport.posts
        assert table == "CropTypes"
        assert [row["Name"] for row in json.loads(payload)] == ["New"]

    def test_failed_table_does_not_advance_watermark(self, syncer, session, fake_transport, entity_repo):
        entity_repo.save([make_location(updated_at=at(1)), make_device(updated_at=at(1))])
        fake_transport.fail_post_at = 1

        errors = syncer.push(session)

        assert [(e.kind, e.context) for e in errors] == [(SyncErrorKind.TRANSPORT, "Locations")]
        # Remaining tables are still attempted.
        assert [name for name, _, _ in fake_transport.posts] == ["Locations", "Devices"]
        assert syncer.settings.last_successful_post == EPOCH

    def test_push_order(self, syncer, session, fake_transport, entity_repo):
        device = make_device(updated_at=at(1))
        entity_repo.save([device, make_location(updated_at=at(1)), CropType(name="Kale", created_at=at(1))])

        syncer.push(session)

        assert [name for name, _, _ in fake_transport.posts] == ["Locations", "CropTypes", "Devices"]

    def test_changed_rows_are_selected_strictly_after_watermark(self, syncer, session, fake_transport, entity_repo):
        entity_repo.save([make_location(updated_at=at(2))])
        syncer.settings.last_successful_post = at(2)

        syncer.push(session)

        assert fake_transport.posts == []

    def test_watermark_is_the_time_sampled_before_posting(self, session, fake_transport, settings_service, clock, entity_repo):
        entity_repo.save([make_location(updated_at=at(1))])

        class AdvancingTransport(type(fake_transport)):
            def post_table(self, table_name, payload, credentials):
                clock.advance(minutes=5)
                super().post_table(table_name, payload, credentials)

        before = clock()
        syncer = ReferenceTableSyncer(AdvancingTransport(), settings_service, clock=clock)
        syncer.push(session)

        assert settings_service.last_successful_post == before
        assert clock() == before + timedelta(minutes=5)
