"""History upload: atomic never-uploaded pass and slice re-upload pass."""

from __future__ import annotations

import json
import uuid
from datetime import date, datetime, time, timedelta, timezone

import pytest

from conftest import at, make_block
from greensync.domain.history import Sample
from greensync.enums.sync import SyncErrorKind
from greensync.schemas.history import decode_history_page
from greensync.services.sync.upload_batcher import UploadBatcher

JAN1 = date(2024, 1, 1)


def _blocks_for_days(count: int) -> list:
    """One never-uploaded block per day of 2023 with a single 08:00 sample."""
    sensor_id = uuid.uuid4()
    blocks = []
    for n in range(count):
        day = date(2023, 1, 1) + timedelta(days=n)
        blocks.append(make_block(sensor_id, day, [(datetime.combine(day, time(8), tzinfo=timezone.utc), float(n))]))
    return blocks


@pytest.fixture()
def batcher(fake_transport, settings_service, clock):
    return UploadBatcher(fake_transport, settings_service, batch_size=30, clock=clock)


class TestNeverUploadedPass:
    def test_blocks_are_posted_in_batches_and_marked(self, batcher, session, fake_transport, history_repo, clock):
        blocks = _blocks_for_days(61)
        history_repo.save(blocks)

        assert batcher.push(session) == []

        assert [len(json.loads(payload)) for _, payload, _ in fake_transport.posts] == [30, 30, 1]
        assert history_repo.never_uploaded() == []
        assert {history_repo.get_block(b.sensor_id, b.day).uploaded_at for b in blocks} == {clock()}

    def test_failure_on_second_of_three_batches_marks_nothing(self, batcher, session, fake_transport, history_repo):
        history_repo.save(_blocks_for_days(61))
        fake_transport.fail_post_at = 2

        errors = batcher.push(session)

        assert [e.kind for e in errors] == [SyncErrorKind.TRANSPORT]
        assert len(fake_transport.posts) == 2
        assert len(history_repo.never_uploaded()) == 61
        assert session.pending_count == 0

    def test_retry_after_failure_sends_every_block_again(self, batcher, session, fake_transport, history_repo):
        history_repo.save(_blocks_for_days(5))
        batcher.batch_size = 2
        fake_transport.fail_post_at = 3

        assert batcher.push(session) != []
        fake_transport.fail_post_at = None
        fake_transport.posts.clear()

        assert batcher.push(session) == []
        assert sum(len(json.loads(payload)) for _, payload, _ in fake_transport.posts) == 5
        assert history_repo.never_uploaded() == []

    def test_payload_carries_decoded_samples(self, batcher, session, fake_transport, history_repo):
        sensor_id = uuid.uuid4()
        history_repo.save([make_block(sensor_id, JAN1, [(at(1, 8), 1.5), (at(1, 9), 2.5)])])

        batcher.push(session)

        (table, payload, credentials), = fake_transport.posts
        assert table == "SensorsHistory"
        assert credentials.user_id == "7"
        (sent,) = decode_history_page(payload)
        assert sent.sensor_id == sensor_id
        assert sent.data == [Sample(at(1, 8), 1.5), Sample(at(1, 9), 2.5)]

    def test_empty_store_posts_nothing(self, batcher, session, fake_transport):
        assert batcher.push(session) == []
        assert fake_transport.posts == []

    def test_batch_size_must_be_positive(self, fake_transport, settings_service):
        with pytest.raises(ValueError):
            UploadBatcher(fake_transport, settings_service, batch_size=0)


class TestReuploadPass:
    def test_only_samples_after_upload_are_sent(self, batcher, session, fake_transport, history_repo, clock):
        sensor_id = uuid.uuid4()
        history_repo.save(
            [
                make_block(
                    sensor_id,
                    JAN1,
                    [(at(1, 9), 1.0), (at(1, 10), 2.0), (at(1, 10, 5), 3.0)],
                    uploaded_at=at(1, 10),
                )
            ]
        )

        assert batcher.push(session) == []

        (_, payload, _), = fake_transport.posts
        (sliced,) = decode_history_page(payload)
        assert sliced.sensor_id == sensor_id
        assert sliced.day == JAN1
        assert sliced.data == [Sample(at(1, 10, 5), 3.0)]
        stored = history_repo.get_block(sensor_id, JAN1)
        assert stored.uploaded_at == clock()
        assert len(stored.decode()) == 3

    def test_block_without_newer_samples_is_not_sent(self, batcher, session, fake_transport, history_repo):
        history_repo.save([make_block(uuid.uuid4(), JAN1, [(at(1, 9), 1.0)], uploaded_at=at(1, 10))])

        assert batcher.push(session) == []
        assert fake_transport.posts == []

    def test_slices_are_sent_in_one_post(self, batcher, session, fake_transport, history_repo):
        history_repo.save(
            [
                make_block(uuid.uuid4(), JAN1, [(at(1, 11), 1.0)], uploaded_at=at(1, 10)),
                make_block(uuid.uuid4(), JAN1, [(at(1, 12), 2.0)], uploaded_at=at(1, 10)),
            ]
        )

        batcher.push(session)

        assert len(fake_transport.posts) == 1
        assert len(decode_history_page(fake_transport.posts[0][1])) == 2

    def test_failed_post_keeps_previous_upload_time(self, batcher, session, fake_transport, history_repo):
        sensor_id = uuid.uuid4()
        history_repo.save([make_block(sensor_id, JAN1, [(at(1, 11), 1.0)], uploaded_at=at(1, 10))])
        fake_transport.fail_post_at = 1

        errors = batcher.push(session)

        assert [e.kind for e in errors] == [SyncErrorKind.TRANSPORT]
        assert history_repo.get_block(sensor_id, JAN1).uploaded_at == at(1, 10)

    def test_new_blocks_go_first_then_slices(self, batcher, session, fake_transport, history_repo):
        sensor_id = uuid.uuid4()
        history_repo.save(
            [
                make_block(sensor_id, JAN1, [(at(1, 11), 1.0)], uploaded_at=at(1, 10)),
                make_block(sensor_id, date(2024, 1, 2), [(at(2, 8), 1.0)]),
            ]
        )

        assert batcher.push(session) == []

        first, second = (decode_history_page(payload) for _, payload, _ in fake_transport.posts)
        assert [block.day for block in first] == [date(2024, 1, 2)]
        assert [block.day for block in second] == [JAN1]

    def test_failed_first_pass_skips_reupload(self, batcher, session, fake_transport, history_repo):
        sensor_id = uuid.uuid4()
        history_repo.save(
            [
                make_block(sensor_id, JAN1, [(at(1, 11), 1.0)], uploaded_at=at(1, 10)),
                make_block(sensor_id, date(2024, 1, 2), [(at(2, 8), 1.0)]),
            ]
        )
        fake_transport.fail_post_at = 1

        batcher.push(session)

        assert len(fake_transport.posts) == 1
