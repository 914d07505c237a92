"""
Server-side de-duplication of client retries keyed by ``Idempotency-Key``.

The offline outbox on mobile clients replays queued actions with the key it
generated when the action was first queued. The first successful response is
stored alongside the state change, in the same transaction, and any replay
with the same key gets that stored response back.
"""
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from skillconnect.api.middleware.error_handler import ConflictException
from skillconnect.lib.db import utcnow
from skillconnect.lib.logging import get_logger
from skillconnect.models.idempotency import IdempotencyRecord


logger = get_logger(__name__)


class IdempotencyService:
    def __init__(self, session: Session):
        self.session = session

    def find(self, user_id: UUID, key: Optional[str], operation: str) -> Optional[IdempotencyRecord]:
        """
        Stored record for this key, or None.

        Raises:
            ConflictException: If the key was already used for a different operation
        """
        if not key:
            return None
        record = self.session.execute(
            select(IdempotencyRecord).where(
                IdempotencyRecord.user_id == user_id,
                IdempotencyRecord.key == key,
            )
        ).scalar_one_or_none()
        if record is None:
            return None
        if record.operation != operation:
            raise ConflictException(
                "Idempotency-Key was already used for a different operation",
                details={"operation": record.operation},
            )
        logger.info(
            "Replaying stored response",
            extra={"user_id": str(user_id), "idempotency_key": key, "operation": operation},
        )
        return record

    def record(
        self,
        user_id: UUID,
        key: Optional[str],
        operation: str,
        status_code: int,
        response_body: dict,
    ) -> None:
        """Stage the response; a no-op without a key."""
        if not key:
            return
        self.session.add(IdempotencyRecord(
            id=uuid4(),
            user_id=user_id,
            key=key,
            operation=operation,
            status_code=status_code,
            response_body=response_body,
            created_at=utcnow(),
        ))
