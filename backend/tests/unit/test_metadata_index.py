"""
Unit Tests for the in-memory metadata index
"""
from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from mabox.models.file_record import FileRecord
from mabox.services.metadata_index import MetadataIndex

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_record(name: str, ttl_seconds: float = 3600, uploaded_at: datetime = NOW) -> FileRecord:
    return FileRecord(
        public_name=name,
        original_name=name,
        size_bytes=3,
        mime_type="text/plain",
        uploaded_at=uploaded_at,
        expires_at=uploaded_at + timedelta(seconds=ttl_seconds),
    )


class TestFileRecord:
    """Record value object"""

    def test_is_frozen(self):
        record = make_record("a.txt")
        with pytest.raises(FrozenInstanceError):
            record.expires_at = NOW

    def test_expiry_must_follow_upload(self):
        with pytest.raises(ValueError):
            FileRecord("a.txt", "a.txt", 1, "text/plain", NOW, NOW)

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError):
            FileRecord("a.txt", "a.txt", -1, "text/plain", NOW, NOW + timedelta(seconds=1))

    def test_expired_at_exact_boundary(self):
        record = make_record("a.txt", ttl_seconds=10)
        assert not record.is_expired(NOW + timedelta(seconds=9))
        assert record.is_expired(NOW + timedelta(seconds=10))


class TestReservations:
    """claim / commit / release"""

    def test_claim_returns_first_free_candidate(self):
        index = MetadataIndex()
        index.commit(make_record("a.txt"))

        name = index.claim(["a.txt", "a(1).txt"], lambda n: True)

        assert name == "a(1).txt"

    def test_claim_consults_disk(self):
        index = MetadataIndex()
        on_disk = {"a.txt"}

        name = index.claim(["a.txt", "a(1).txt"], lambda n: n not in on_disk)

        assert name == "a(1).txt"

    def test_reserved_name_is_taken_but_invisible(self):
        index = MetadataIndex()
        name = index.claim(["a.txt"], lambda n: True)

        assert index.is_taken(name)
        assert index.get(name) is None
        assert len(index) == 0
        assert index.claim(["a.txt"], lambda n: True) is None

    def test_commit_makes_record_visible(self):
        index = MetadataIndex()
        index.claim(["a.txt"], lambda n: True)
        record = make_record("a.txt")

        index.commit(record)

        assert index.get("a.txt") is record
        assert "a.txt" in index

    def test_commit_refuses_duplicate(self):
        index = MetadataIndex()
        index.commit(make_record("a.txt"))
        with pytest.raises(KeyError):
            index.commit(make_record("a.txt"))

    def test_release_frees_name(self):
        index = MetadataIndex()
        index.claim(["a.txt"], lambda n: True)

        index.release("a.txt")
        index.release("a.txt")

        assert not index.is_taken("a.txt")

    def test_claim_with_no_candidates(self):
        assert MetadataIndex().claim([], lambda n: True) is None


class TestRemoval:
    """pop and expired snapshots"""

    def test_pop_is_idempotent(self):
        index = MetadataIndex()
        record = make_record("a.txt")
        index.commit(record)

        assert index.pop("a.txt") is record
        assert index.pop("a.txt") is None
        assert "a.txt" not in index

    def test_pop_with_stale_expected_keeps_newer_record(self):
        index = MetadataIndex()
        old = make_record("a.txt")
        index.commit(old)
        index.pop("a.txt")
        new = make_record("a.txt", uploaded_at=NOW + timedelta(minutes=5))
        index.commit(new)

        assert index.pop("a.txt", expected=old) is None
        assert index.get("a.txt") is new

    def test_expired_snapshot(self):
        index = MetadataIndex()
        index.commit(make_record("old.txt", ttl_seconds=10))
        index.commit(make_record("new.txt", ttl_seconds=3600))

        expired = index.expired(NOW + timedelta(seconds=60))

        assert [r.public_name for r in expired] == ["old.txt"]
        assert len(index.snapshot()) == 2
