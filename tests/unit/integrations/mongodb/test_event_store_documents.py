"""Unit tests for MongoEventStore document mapping and error translation."""

from datetime import datetime, timezone

from pymongo.errors import BulkWriteError, DuplicateKeyError, OperationFailure

from chronicle import AggregateSnapshot, StoredEvent
from chronicle.integrations.mongodb.event_store import (
    from_document,
    is_position_conflict,
    to_document,
)

CREATED = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


def test_event_document_uses_record_id_as_primary_key():
    record = StoredEvent(type="Incremented.v1", version=3, created=CREATED, data="{}")

    document = to_document(record)

    assert document == {
        "_id": record.id,
        "type": "Incremented.v1",
        "version": 3,
        "created": CREATED,
        "data": "{}",
    }


def test_document_back_to_record():
    snapshot = AggregateSnapshot(type="Counter.v1", version=128, created=CREATED, data="{}")

    assert from_document(AggregateSnapshot, to_document(snapshot)) == snapshot


def test_duplicate_key_is_a_position_conflict():
    assert is_position_conflict(DuplicateKeyError("E11000 duplicate key", code=11000))


def test_bulk_duplicate_key_is_a_position_conflict():
    error = BulkWriteError(
        {"writeErrors": [{"index": 0, "code": 11000, "errmsg": "E11000 duplicate key"}]}
    )

    assert is_position_conflict(error)


def test_write_conflict_is_a_position_conflict():
    assert is_position_conflict(OperationFailure("WriteConflict", code=112))


def test_other_failures_are_not_position_conflicts():
    assert not is_position_conflict(OperationFailure("not primary", code=10107))
    assert not is_position_conflict(
        BulkWriteError({"writeErrors": [{"index": 0, "code": 121, "errmsg": "validation"}]})
    )
