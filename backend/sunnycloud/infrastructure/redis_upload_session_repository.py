"""
Redis Upload Session Repository Implementation

Concrete Redis-based implementation of UploadSessionRepository.
"""

from datetime import datetime
from typing import List, Optional

from sunnycloud.domain.uploads.entities import UploadSession
from sunnycloud.domain.uploads.repositories import UploadSessionRepository
from sunnycloud.domain.uploads.value_objects import UploadState


class RedisUploadSessionRepository(UploadSessionRepository):
    """
    Redis-based implementation of UploadSessionRepository.

    Key Schema:
        - upload:{session_id} -> UploadSession JSON
        - upload:deadline -> Sorted Set of session ids scored by abandonment deadline

    Completed sessions leave the deadline index and expire after a day;
    every other session stays indexed until the sweeper reaps it.
    """

    KEY_PREFIX = "upload"
    DEADLINE_INDEX = "upload:deadline"
    COMPLETED_RETENTION_SECONDS = 24 * 60 * 60

    def __init__(self, redis_repository):
        self.redis_repo = redis_repository

    def _key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}:{session_id}"

    def save(self, session: UploadSession) -> bool:
        key = self._key(session.session_id)
        if session.state == UploadState.COMPLETED:
            self.redis_repo.index_remove(self.DEADLINE_INDEX, session.session_id)
            return self.redis_repo.set_json(
                key, session.to_dict(), ttl=self.COMPLETED_RETENTION_SECONDS
            )

        saved = self.redis_repo.set_json(key, session.to_dict())
        if session.expires_at is not None:
            self.redis_repo.index_add(
                self.DEADLINE_INDEX, session.session_id, session.expires_at.timestamp()
            )
        return saved

    def save_if_state(self, session: UploadSession, expected: UploadState) -> bool:
        # The deadline index entry was written by the first save and is unchanged
        return self.redis_repo.compare_and_set_json(
            self._key(session.session_id), "state", expected.value, session.to_dict()
        )

    def get(self, session_id: str) -> Optional[UploadSession]:
        data = self.redis_repo.get_json(self._key(session_id))
        if data is None:
            return None
        return UploadSession.from_dict(data)

    def find_abandoned(self, now: datetime) -> List[UploadSession]:
        ids = self.redis_repo.index_range(self.DEADLINE_INDEX, now.timestamp())
        documents = self.redis_repo.get_many_json([self._key(i) for i in ids])

        abandoned = []
        for session_id, data in zip(ids, documents):
            if data is None:
                self.redis_repo.index_remove(self.DEADLINE_INDEX, session_id)
                continue
            session = UploadSession.from_dict(data)
            if session.is_abandoned(now):
                abandoned.append(session)
        return abandoned

    def delete(self, session_id: str) -> bool:
        self.redis_repo.index_remove(self.DEADLINE_INDEX, session_id)
        return self.redis_repo.delete(self._key(session_id)) > 0
