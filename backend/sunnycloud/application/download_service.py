"""
Download Service

Application service that redeems capability tokens and mints share links.

Redemption never checks who is asking: a valid, unexpired token is the
whole authorization, so a link forwarded to another user works for them.
Ownership is enforced only when a link is issued.
"""

import logging
from typing import Optional, Union

from sunnycloud.application.download_result import (
    FileDownload,
    GroupManifest,
    ManifestEntry,
    ShareLink,
)
from sunnycloud.domain.access_tokens import (
    PERMANENT_TTL_SECONDS,
    CapabilityTokenService,
    TokenPurpose,
)
from sunnycloud.domain.errors import (
    OwnershipViolationError,
    ResourceNotFoundError,
    TokenMalformedError,
)
from sunnycloud.domain.file_storage.repositories import FileGroupRepository, FileRecordRepository
from sunnycloud.domain.file_storage.storage_repository import IObjectStorageRepository

logger = logging.getLogger(__name__)

# Lifetime of the per-item tokens embedded in a group manifest
MANIFEST_ITEM_TTL_SECONDS = 60 * 60


class DownloadResolver:
    """
    Application service for download redemption and link issuance.

    Responsibilities:
    - Verify a capability token and dispatch on its purpose
    - Stream single blobs (standalone files and group items)
    - Expand group tokens into manifests of short-lived item links
    - Issue share links after checking ownership
    """

    def __init__(
        self,
        token_service: CapabilityTokenService,
        file_repository: FileRecordRepository,
        group_repository: FileGroupRepository,
        storage_repository: IObjectStorageRepository,
        api_base_url: str = "/api/v1",
        site_url: str = "",
        manifest_item_ttl: int = MANIFEST_ITEM_TTL_SECONDS,
    ):
        """
        Initialize Download Resolver with dependencies.

        Args:
            token_service: Issues and verifies capability tokens
            file_repository: Persistence for standalone files
            group_repository: Persistence for groups and their items
            storage_repository: Object storage backend
            api_base_url: Prefix of the API download route in generated links
            site_url: Prefix of the web download page used by group links
            manifest_item_ttl: Lifetime in seconds of per-item manifest tokens
        """
        self.token_service = token_service
        self.file_repository = file_repository
        self.group_repository = group_repository
        self.storage_repository = storage_repository
        self.api_base_url = api_base_url.rstrip("/")
        self.site_url = site_url.rstrip("/")
        self.manifest_item_ttl = manifest_item_ttl

    def download_url(self, token: str) -> str:
        return f"{self.api_base_url}/download/{token}"

    # Redemption

    def resolve(self, token: str) -> Union[FileDownload, GroupManifest]:
        """
        Redeem a capability token.

        Returns:
            FileDownload for ``file-download`` tokens, GroupManifest for
            ``group-download`` tokens

        Raises:
            TokenMalformedError: If the token is malformed or is a session token
            TokenInvalidSignatureError: If the signature does not match
            TokenExpiredError: If the token has expired
            ResourceNotFoundError: If the metadata row or the blob is gone
        """
        claims = self.token_service.verify(token)

        if claims.purpose is TokenPurpose.FILE_DOWNLOAD:
            return self._resolve_file(claims.resource_ref)
        if claims.purpose is TokenPurpose.GROUP_DOWNLOAD:
            return self._resolve_group(claims.resource_ref)
        if claims.purpose is TokenPurpose.SESSION:
            raise TokenMalformedError("Session tokens cannot be redeemed for downloads")
        raise TokenMalformedError(f"Unhandled token purpose: {claims.purpose}")

    def _resolve_file(self, storage_key: str) -> FileDownload:
        row = self.file_repository.get_by_storage_key(storage_key)
        if row is None:
            row = self.group_repository.get_item_by_storage_key(storage_key)
        if row is None:
            raise ResourceNotFoundError(f"No file references {storage_key}")

        stored = self.storage_repository.get(storage_key)
        if stored is None:
            logger.warning(f"Metadata exists but blob is missing for {storage_key}")
            raise ResourceNotFoundError(
                f"Blob missing for {storage_key}", reason=ResourceNotFoundError.BLOB_MISSING
            )

        return FileDownload(
            name=row.name,
            content_type=row.content_type or stored.content_type,
            size=stored.size,
            stored=stored,
        )

    def _resolve_group(self, group_ref: str) -> GroupManifest:
        try:
            group_id = int(group_ref)
        except ValueError as e:
            raise ResourceNotFoundError(f"Group {group_ref} not found", original_error=e) from e

        group = self.group_repository.get(group_id)
        if group is None:
            raise ResourceNotFoundError(f"Group {group_id} not found")

        entries = []
        for item in self.group_repository.list_items(group_id):
            item_token, item_claims = self.token_service.issue_claims(
                item.storage_key, TokenPurpose.FILE_DOWNLOAD, self.manifest_item_ttl
            )
            entries.append(
                ManifestEntry(
                    name=item.name,
                    size=item.size,
                    content_type=item.content_type,
                    download_ref=item_token,
                    download_url=self.download_url(item_token),
                    expires_at=item_claims.expires_at,
                )
            )

        return GroupManifest(
            group_id=group_id,
            name=group.name,
            group_type=group.group_type.value,
            declared_total_size=group.declared_total_size,
            declared_item_count=group.declared_item_count,
            items=sorted(entries, key=lambda entry: entry.name),
        )

    # Issuance

    def issue_file_link(
        self, owner_id: str, file_id: int, ttl_seconds: Optional[int] = None
    ) -> ShareLink:
        """
        Mint a download link for a file the caller owns.

        Args:
            owner_id: Principal requesting the link
            file_id: File to share
            ttl_seconds: Link lifetime; None means a permanent link

        Raises:
            ResourceNotFoundError: If the file does not exist
            OwnershipViolationError: If the file belongs to another owner
            ValidationError: If ``ttl_seconds`` is not positive
        """
        record = self.file_repository.get(file_id)
        if record is None:
            raise ResourceNotFoundError(f"File {file_id} not found")
        if record.owner_id != owner_id:
            raise OwnershipViolationError(f"File {file_id} belongs to another owner")

        ttl = PERMANENT_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        token, claims = self.token_service.issue_claims(
            record.storage_key, TokenPurpose.FILE_DOWNLOAD, ttl
        )
        logger.info(f"Issued file link for file {file_id} (ttl={ttl}s)")
        return ShareLink(
            url=self.download_url(token),
            token=token,
            expires_at=claims.expires_at,
            permanent=ttl_seconds is None,
        )

    def issue_group_link(
        self, owner_id: str, group_id: int, ttl_seconds: Optional[int] = None
    ) -> ShareLink:
        """
        Mint a download-page link for a group the caller owns.

        Raises:
            ResourceNotFoundError: If the group does not exist
            OwnershipViolationError: If the group belongs to another owner
        """
        group = self.group_repository.get(group_id)
        if group is None:
            raise ResourceNotFoundError(f"Group {group_id} not found")
        if group.owner_id != owner_id:
            raise OwnershipViolationError(f"Group {group_id} belongs to another owner")

        ttl = PERMANENT_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        token, claims = self.token_service.issue_claims(
            str(group.id), TokenPurpose.GROUP_DOWNLOAD, ttl
        )
        logger.info(f"Issued group link for group {group_id} (ttl={ttl}s)")
        return ShareLink(
            url=f"{self.site_url}/download?token={token}",
            token=token,
            expires_at=claims.expires_at,
            permanent=ttl_seconds is None,
        )
