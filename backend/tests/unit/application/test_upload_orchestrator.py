"""
Unit tests for UploadOrchestrator.

Direct uploads, group creation and the chunked upload lifecycle against
in-memory repositories and object store.
"""

from unittest.mock import patch

import pytest

from sunnycloud.domain.errors import (
    AdapterFailureError,
    IncompletePartSetError,
    OwnershipViolationError,
    PayloadTooLargeError,
    ResourceNotFoundError,
    ValidationError,
)
from sunnycloud.domain.file_storage.entities import FileGroupItem, FileRecord, GroupType
from sunnycloud.domain.file_storage.storage_repository import UploadedPart
from sunnycloud.domain.uploads import UploadState

OWNER = "alice"
OTHER = "bob"


def _upload_all(orchestrator, session, chunks):
    return [
        orchestrator.upload_part(session.session_id, number, data)
        for number, data in enumerate(chunks, start=1)
    ]


class TestDirectUpload:
    def test_stores_blob_then_row(self, orchestrator, file_repository, storage_repository):
        record = orchestrator.put_direct(OWNER, "report.pdf", b"%PDF-1.4 data")

        assert record.id is not None
        assert record.size == len(b"%PDF-1.4 data")
        assert record.content_type == "application/pdf"
        assert record.storage_key.startswith("uploads/alice/")
        assert storage_repository.data(record.storage_key) == b"%PDF-1.4 data"
        assert file_repository.get(record.id) == record

    def test_explicit_content_type_wins(self, orchestrator):
        record = orchestrator.put_direct(OWNER, "notes", b"x", content_type="text/markdown")
        assert record.content_type == "text/markdown"

    def test_unknown_extension_defaults_to_octet_stream(self, orchestrator):
        record = orchestrator.put_direct(OWNER, "blob.zzzz", b"x")
        assert record.content_type == "application/octet-stream"

    def test_expiry_in_days(self, orchestrator):
        record = orchestrator.put_direct(OWNER, "a.txt", b"x", expires_in_days=3)
        assert record.expires_at is not None
        assert record.expires_at > record.created_at

    def test_without_expiry_is_permanent(self, orchestrator):
        assert orchestrator.put_direct(OWNER, "a.txt", b"x").expires_at is None

    def test_oversized_payload_writes_nothing(self, orchestrator, file_repository, storage_repository, limits):
        with pytest.raises(PayloadTooLargeError) as exc_info:
            orchestrator.put_direct(OWNER, "big.bin", b"x" * (limits.max_direct_upload_bytes + 1))

        assert exc_info.value.limit == limits.max_direct_upload_bytes
        assert storage_repository.objects == {}
        assert file_repository.all() == []

    def test_payload_at_limit_is_accepted(self, orchestrator, limits):
        record = orchestrator.put_direct(OWNER, "edge.bin", b"x" * limits.max_direct_upload_bytes)
        assert record.size == limits.max_direct_upload_bytes

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_blank_name_is_rejected(self, orchestrator, name):
        with pytest.raises(ValidationError):
            orchestrator.put_direct(OWNER, name, b"x")

    def test_storage_failure_leaves_no_row(self, orchestrator, file_repository, storage_repository):
        with patch.object(storage_repository, "put", side_effect=AdapterFailureError("down")):
            with pytest.raises(AdapterFailureError):
                orchestrator.put_direct(OWNER, "a.txt", b"x")
        assert file_repository.all() == []


class TestGroups:
    def test_create_group(self, orchestrator):
        group = orchestrator.create_group(OWNER, "photos", 300, 3, "folder", expires_in_days=1)
        assert group.id is not None
        assert group.group_type is GroupType.FOLDER
        assert group.expires_at is not None

    @pytest.mark.parametrize(
        "size,count,group_type",
        [(0, 3, "archive"), (300, 0, "archive"), (300, 3, "zip")],
    )
    def test_invalid_group_is_rejected(self, orchestrator, size, count, group_type):
        with pytest.raises(ValidationError):
            orchestrator.create_group(OWNER, "photos", size, count, group_type)

    def test_put_group_item(self, orchestrator, group_repository, storage_repository):
        group = orchestrator.create_group(OWNER, "photos", 10, 1)
        item = orchestrator.put_group_item(OWNER, group.id, "trip/beach.jpg", b"jpeg")

        assert isinstance(item, FileGroupItem)
        assert item.content_type == "image/jpeg"
        assert item.storage_key.startswith(f"groups/alice/{group.id}/")
        assert storage_repository.data(item.storage_key) == b"jpeg"
        assert group_repository.list_items(group.id) == [item]

    def test_put_group_item_into_foreign_group(self, orchestrator, storage_repository):
        group = orchestrator.create_group(OWNER, "photos", 10, 1)
        with pytest.raises(OwnershipViolationError):
            orchestrator.put_group_item(OTHER, group.id, "x.jpg", b"x")
        assert storage_repository.objects == {}

    def test_put_group_item_into_missing_group(self, orchestrator):
        with pytest.raises(ResourceNotFoundError):
            orchestrator.put_group_item(OWNER, 999, "x.jpg", b"x")


class TestChunkedUpload:
    def test_init_registers_session(self, orchestrator, session_repository, storage_repository):
        session = orchestrator.init(OWNER, "movie.mp4", 9, 3)

        assert session.state is UploadState.CREATED
        assert session.content_type == "video/mp4"
        assert session_repository.get(session.session_id) == session
        assert session.upload_id in storage_repository.sessions

    @pytest.mark.parametrize("total_chunks", [0, 17, "3", True])
    def test_init_rejects_bad_chunk_counts(self, orchestrator, total_chunks):
        with pytest.raises(ValidationError):
            orchestrator.init(OWNER, "movie.mp4", 9, total_chunks)

    def test_init_rejects_negative_size(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.init(OWNER, "movie.mp4", -1, 3)

    def test_init_into_foreign_group(self, orchestrator):
        group = orchestrator.create_group(OWNER, "archive", 10, 2)
        with pytest.raises(OwnershipViolationError):
            orchestrator.init(OTHER, "part.bin", 10, 1, group_id=group.id)

    def test_registry_failure_aborts_backend_session(self, orchestrator, session_repository, storage_repository):
        with patch.object(session_repository, "save", side_effect=ConnectionError("redis down")):
            with pytest.raises(ConnectionError):
                orchestrator.init(OWNER, "movie.mp4", 9, 3)
        assert storage_repository.sessions == {}

    def test_complete_assembles_in_part_order(self, orchestrator, file_repository, storage_repository):
        session = orchestrator.init(OWNER, "movie.mp4", 9, 3)
        # Upload out of order
        part3 = orchestrator.upload_part(session.session_id, 3, b"ccc")
        part1 = orchestrator.upload_part(session.session_id, 1, b"aaa")
        part2 = orchestrator.upload_part(session.session_id, 2, b"bbb")

        record = orchestrator.complete(session.session_id, [part2, part3, part1])

        assert isinstance(record, FileRecord)
        assert storage_repository.data(session.storage_key) == b"aaabbbccc"
        assert record.storage_key == session.storage_key
        assert record.size == 9
        assert file_repository.get(record.id) == record

    def test_complete_accepts_part_dicts(self, orchestrator, storage_repository):
        session = orchestrator.init(OWNER, "a.bin", 2, 2)
        parts = [p.to_dict() for p in _upload_all(orchestrator, session, [b"a", b"b"])]
        orchestrator.complete(session.session_id, parts)
        assert storage_repository.data(session.storage_key) == b"ab"

    def test_reuploaded_part_replaces_earlier_upload(self, orchestrator, storage_repository):
        session = orchestrator.init(OWNER, "a.bin", 6, 2)
        orchestrator.upload_part(session.session_id, 1, b"old")
        part2 = orchestrator.upload_part(session.session_id, 2, b"two")
        part1 = orchestrator.upload_part(session.session_id, 1, b"new")

        orchestrator.complete(session.session_id, [part1, part2])
        assert storage_repository.data(session.storage_key) == b"newtwo"

    def test_stale_etag_fails_session(self, orchestrator, file_repository, session_repository):
        session = orchestrator.init(OWNER, "a.bin", 6, 2)
        stale = orchestrator.upload_part(session.session_id, 1, b"old")
        orchestrator.upload_part(session.session_id, 1, b"new")
        part2 = orchestrator.upload_part(session.session_id, 2, b"two")

        with pytest.raises(AdapterFailureError):
            orchestrator.complete(session.session_id, [stale, part2])

        assert session_repository.get(session.session_id).state is UploadState.FAILED
        assert file_repository.all() == []

    def test_incomplete_part_set_writes_nothing(self, orchestrator, file_repository, storage_repository, session_repository):
        session = orchestrator.init(OWNER, "a.bin", 9, 3)
        parts = _upload_all(orchestrator, session, [b"aaa", b"bbb"])

        with pytest.raises(IncompletePartSetError) as exc_info:
            orchestrator.complete(session.session_id, parts)

        assert exc_info.value.missing == [3]
        assert not storage_repository.head(session.storage_key)
        assert file_repository.all() == []
        # The session stays open so the client can upload part 3 and retry
        assert session_repository.get(session.session_id).state.is_active()

        parts.append(orchestrator.upload_part(session.session_id, 3, b"ccc"))
        orchestrator.complete(session.session_id, parts)
        assert storage_repository.data(session.storage_key) == b"aaabbbccc"

    def test_duplicate_and_unexpected_parts_are_reported(self, orchestrator):
        session = orchestrator.init(OWNER, "a.bin", 2, 2)
        part1, part2 = _upload_all(orchestrator, session, [b"a", b"b"])
        extra = UploadedPart(part_number=5, etag="x")

        with pytest.raises(IncompletePartSetError) as exc_info:
            orchestrator.complete(session.session_id, [part1, part1, part2, extra])

        assert exc_info.value.duplicated == [1]
        assert exc_info.value.unexpected == [5]
        assert exc_info.value.missing == []

    def test_oversized_chunk_is_rejected(self, orchestrator, limits, storage_repository):
        session = orchestrator.init(OWNER, "a.bin", 9, 3)
        with pytest.raises(PayloadTooLargeError):
            orchestrator.upload_part(session.session_id, 1, b"x" * (limits.max_chunk_bytes + 1))
        assert storage_repository.sessions[session.upload_id]["parts"] == {}

    @pytest.mark.parametrize("part_number", [0, 4, -1])
    def test_part_number_out_of_range(self, orchestrator, part_number):
        session = orchestrator.init(OWNER, "a.bin", 9, 3)
        with pytest.raises(ValidationError):
            orchestrator.upload_part(session.session_id, part_number, b"x")

    def test_first_part_moves_session_in_progress(self, orchestrator, session_repository):
        session = orchestrator.init(OWNER, "a.bin", 9, 3)
        saves_after_init = session_repository.save_count

        orchestrator.upload_part(session.session_id, 1, b"a")
        orchestrator.upload_part(session.session_id, 2, b"b")

        assert session_repository.get(session.session_id).state is UploadState.PARTS_IN_PROGRESS
        assert session_repository.save_count == saves_after_init + 1

    def test_foreign_owner_cannot_upload_parts(self, orchestrator):
        session = orchestrator.init(OWNER, "a.bin", 9, 3)
        with pytest.raises(OwnershipViolationError):
            orchestrator.upload_part(session.session_id, 1, b"a", owner_id=OTHER)

    def test_unknown_session(self, orchestrator):
        with pytest.raises(ResourceNotFoundError):
            orchestrator.upload_part("nope", 1, b"a")

    def test_completed_session_rejects_more_work(self, orchestrator, session_repository):
        session = orchestrator.init(OWNER, "a.bin", 1, 1)
        parts = _upload_all(orchestrator, session, [b"a"])
        orchestrator.complete(session.session_id, parts)

        assert session_repository.get(session.session_id).state is UploadState.COMPLETED
        with pytest.raises(ValidationError):
            orchestrator.upload_part(session.session_id, 1, b"a")
        with pytest.raises(ValidationError):
            orchestrator.complete(session.session_id, parts)
        with pytest.raises(ValidationError):
            orchestrator.abort(session.session_id)

    def test_final_name_and_size_override(self, orchestrator):
        session = orchestrator.init(OWNER, "draft.bin", 100, 1, expires_in_days=2)
        parts = _upload_all(orchestrator, session, [b"abc"])
        record = orchestrator.complete(session.session_id, parts, final_name="final.bin", final_size=3)

        assert record.name == "final.bin"
        assert record.size == 3
        assert record.expires_at == session.file_expires_at

    def test_group_session_completes_as_item(self, orchestrator, group_repository, file_repository):
        group = orchestrator.create_group(OWNER, "archive", 4, 2)
        session = orchestrator.init(OWNER, "archive.zip.001", 4, 2, group_id=group.id)
        parts = _upload_all(orchestrator, session, [b"PK", b"zz"])

        item = orchestrator.complete(session.session_id, parts)

        assert isinstance(item, FileGroupItem)
        assert item.group_id == group.id
        assert group_repository.list_items(group.id) == [item]
        assert file_repository.all() == []

    def test_abort_discards_parts(self, orchestrator, storage_repository, session_repository):
        session = orchestrator.init(OWNER, "a.bin", 9, 3)
        orchestrator.upload_part(session.session_id, 1, b"a")

        aborted = orchestrator.abort(session.session_id, owner_id=OWNER)

        assert aborted.state is UploadState.ABORTED
        assert session.upload_id not in storage_repository.sessions
        assert session_repository.get(session.session_id).state is UploadState.ABORTED
        with pytest.raises(ValidationError):
            orchestrator.upload_part(session.session_id, 2, b"b")

    def test_abort_is_idempotent(self, orchestrator):
        session = orchestrator.init(OWNER, "a.bin", 9, 3)
        orchestrator.abort(session.session_id)
        assert orchestrator.abort(session.session_id).state is UploadState.ABORTED


class TestConcurrentChanges:
    """Group deletion and session transitions racing a chunked upload."""

    def test_group_deleted_mid_upload(self, orchestrator, file_service, group_repository,
                                      storage_repository, session_repository):
        group = orchestrator.create_group(OWNER, "trip", 4, 1)
        session = orchestrator.init(OWNER, "part.bin", 2, 1, group_id=group.id)
        parts = _upload_all(orchestrator, session, [b"zz"])
        file_service.delete_group(OWNER, group.id)

        with pytest.raises(ResourceNotFoundError):
            orchestrator.complete(session.session_id, parts)

        assert group_repository.item_count() == 0
        assert storage_repository.list_keys(f"groups/{OWNER}/{group.id}/") == []
        assert session.upload_id not in storage_repository.sessions
        assert session_repository.get(session.session_id).state is UploadState.ABORTED

    def test_group_purged_during_assembly(self, orchestrator, group_repository,
                                          storage_repository, session_repository):
        group = orchestrator.create_group(OWNER, "trip", 4, 1)
        session = orchestrator.init(OWNER, "part.bin", 2, 1, group_id=group.id)
        parts = _upload_all(orchestrator, session, [b"zz"])
        assemble = storage_repository.complete_session

        def assemble_then_purge(key, upload_id, uploaded):
            result = assemble(key, upload_id, uploaded)
            group_repository.delete(group.id)
            return result

        with patch.object(storage_repository, "complete_session", side_effect=assemble_then_purge):
            with pytest.raises(ResourceNotFoundError):
                orchestrator.complete(session.session_id, parts)

        assert group_repository.item_count() == 0
        assert not storage_repository.head(session.storage_key)
        assert session_repository.get(session.session_id).state is UploadState.FAILED

    def test_first_part_does_not_reopen_a_completed_session(self, orchestrator, storage_repository,
                                                            session_repository):
        session = orchestrator.init(OWNER, "a.bin", 1, 1)
        upload = storage_repository.upload_part

        def upload_while_completed(key, upload_id, part_number, data):
            etag = upload(key, upload_id, part_number, data)
            finished = session_repository.get(session.session_id)
            finished.complete()
            session_repository.save(finished)
            return etag

        with patch.object(storage_repository, "upload_part", side_effect=upload_while_completed):
            orchestrator.upload_part(session.session_id, 1, b"a")

        assert session_repository.get(session.session_id).state is UploadState.COMPLETED


class TestBackendPartLimit:
    def test_chunk_count_capped_by_backend(self, orchestrator, storage_repository):
        storage_repository.max_parts = 4

        assert orchestrator.max_total_chunks == 4
        assert orchestrator.init(OWNER, "a.bin", 4, 4).total_chunks == 4
        with pytest.raises(ValidationError):
            orchestrator.init(OWNER, "a.bin", 5, 5)

    def test_unbounded_backend_keeps_configured_ceiling(self, orchestrator, limits):
        assert orchestrator.max_total_chunks == limits.max_total_chunks
