"""
Unit tests for DownloadResolver.

Redemption of file and group tokens and ownership-checked link issuance.
"""

import pytest

from sunnycloud.application.download_result import FileDownload, GroupManifest
from sunnycloud.domain.access_tokens import PERMANENT_TTL_SECONDS, TokenPurpose
from sunnycloud.domain.errors import (
    OwnershipViolationError,
    ResourceNotFoundError,
    TokenExpiredError,
    TokenMalformedError,
    ValidationError,
)

OWNER = "alice"
OTHER = "bob"


@pytest.fixture
def stored_file(orchestrator):
    return orchestrator.put_direct(OWNER, "holiday photo.jpg", b"jpeg-bytes")


@pytest.fixture
def group_with_items(orchestrator):
    group = orchestrator.create_group(OWNER, "trip", 999, 5, "folder")
    for name, data in [("c.txt", b"ccc"), ("a.txt", b"a"), ("b/nested.txt", b"bb")]:
        orchestrator.put_group_item(OWNER, group.id, name, data)
    return group


class TestResolveFile:
    def test_streams_file(self, resolver, stored_file):
        link = resolver.issue_file_link(OWNER, stored_file.id, ttl_seconds=60)
        result = resolver.resolve(link.token)

        assert isinstance(result, FileDownload)
        assert result.name == "holiday photo.jpg"
        assert result.content_type == "image/jpeg"
        assert result.size == len(b"jpeg-bytes")
        assert result.stored.read() == b"jpeg-bytes"

    def test_link_forwarded_to_another_user_still_works(self, resolver, stored_file):
        # Redemption never asks who is calling; the token is the authorization
        link = resolver.issue_file_link(OWNER, stored_file.id)
        result = resolver.resolve(link.token)
        assert result.stored.read() == b"jpeg-bytes"

    def test_missing_row_is_metadata_missing(self, resolver, token_service):
        token = token_service.issue("uploads/alice/gone", TokenPurpose.FILE_DOWNLOAD, 60)
        with pytest.raises(ResourceNotFoundError) as exc_info:
            resolver.resolve(token)
        assert exc_info.value.reason == ResourceNotFoundError.METADATA_MISSING

    def test_missing_blob_is_blob_missing(self, resolver, stored_file, storage_repository):
        link = resolver.issue_file_link(OWNER, stored_file.id)
        storage_repository.delete(stored_file.storage_key)

        with pytest.raises(ResourceNotFoundError) as exc_info:
            resolver.resolve(link.token)
        assert exc_info.value.reason == ResourceNotFoundError.BLOB_MISSING

    def test_deleted_file_invalidates_link(self, resolver, stored_file, file_service):
        link = resolver.issue_file_link(OWNER, stored_file.id)
        file_service.delete_file(OWNER, stored_file.id)
        with pytest.raises(ResourceNotFoundError):
            resolver.resolve(link.token)

    def test_expired_link(self, resolver, stored_file, clock):
        link = resolver.issue_file_link(OWNER, stored_file.id, ttl_seconds=30)
        clock.advance(30)
        with pytest.raises(TokenExpiredError):
            resolver.resolve(link.token)

    def test_session_token_cannot_download(self, resolver, token_service):
        token = token_service.issue(OWNER, TokenPurpose.SESSION, 60)
        with pytest.raises(TokenMalformedError):
            resolver.resolve(token)


class TestResolveGroup:
    def test_manifest_lists_items_by_name(self, resolver, group_with_items, clock):
        link = resolver.issue_group_link(OWNER, group_with_items.id)
        manifest = resolver.resolve(link.token)

        assert isinstance(manifest, GroupManifest)
        assert [item.name for item in manifest.items] == ["a.txt", "b/nested.txt", "c.txt"]
        assert manifest.group_type == "folder"
        for item in manifest.items:
            assert item.expires_at == clock.epoch + resolver.manifest_item_ttl
            assert item.download_url == f"/api/v1/download/{item.download_ref}"

    def test_declared_values_are_advisory(self, resolver, group_with_items):
        manifest = resolver.resolve(resolver.issue_group_link(OWNER, group_with_items.id).token)

        assert manifest.declared_total_size == 999
        assert manifest.declared_item_count == 5
        assert manifest.actual_total_size == 6
        assert manifest.actual_item_count == 3
        data = manifest.to_dict()
        assert data["type"] == "folder"
        assert data["actual_item_count"] == 3

    def test_manifest_item_tokens_stream_items(self, resolver, group_with_items):
        manifest = resolver.resolve(resolver.issue_group_link(OWNER, group_with_items.id).token)
        first = resolver.resolve(manifest.items[0].download_ref)

        assert isinstance(first, FileDownload)
        assert first.name == "a.txt"
        assert first.stored.read() == b"a"

    def test_empty_group_has_empty_manifest(self, resolver, orchestrator):
        group = orchestrator.create_group(OWNER, "empty", 1, 1)
        manifest = resolver.resolve(resolver.issue_group_link(OWNER, group.id).token)
        assert manifest.items == []

    def test_deleted_group(self, resolver, group_with_items, file_service):
        link = resolver.issue_group_link(OWNER, group_with_items.id)
        file_service.delete_group(OWNER, group_with_items.id)
        with pytest.raises(ResourceNotFoundError):
            resolver.resolve(link.token)

    def test_non_numeric_group_reference(self, resolver, token_service):
        token = token_service.issue("not-a-number", TokenPurpose.GROUP_DOWNLOAD, 60)
        with pytest.raises(ResourceNotFoundError):
            resolver.resolve(token)


class TestIssueLinks:
    def test_permanent_file_link(self, resolver, stored_file, clock):
        link = resolver.issue_file_link(OWNER, stored_file.id)

        assert link.permanent is True
        assert link.expires_at == clock.epoch + PERMANENT_TTL_SECONDS
        assert link.url == f"/api/v1/download/{link.token}"

    def test_timed_file_link(self, resolver, stored_file, clock):
        link = resolver.issue_file_link(OWNER, stored_file.id, ttl_seconds=3600)
        assert link.permanent is False
        assert link.expires_at == clock.epoch + 3600
        assert link.to_dict()["expires_at"].endswith("+00:00")

    def test_group_link_points_at_download_page(self, resolver, group_with_items):
        link = resolver.issue_group_link(OWNER, group_with_items.id)
        assert link.url == f"https://sunny.example/download?token={link.token}"

    def test_file_link_requires_ownership(self, resolver, stored_file):
        with pytest.raises(OwnershipViolationError):
            resolver.issue_file_link(OTHER, stored_file.id)

    def test_group_link_requires_ownership(self, resolver, group_with_items):
        with pytest.raises(OwnershipViolationError):
            resolver.issue_group_link(OTHER, group_with_items.id)

    def test_link_for_missing_file(self, resolver):
        with pytest.raises(ResourceNotFoundError):
            resolver.issue_file_link(OWNER, 404)

    def test_non_positive_ttl(self, resolver, stored_file):
        with pytest.raises(ValidationError):
            resolver.issue_file_link(OWNER, stored_file.id, ttl_seconds=0)
