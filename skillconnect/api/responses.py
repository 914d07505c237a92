"""
Commit-then-publish helpers for mutating routes.

A mutating route stages its changes through a service, then calls
``commit_and_respond``: the session is flushed, the response body is built
from the flushed rows, stored under the caller's Idempotency-Key, committed,
and only then are the real-time events dispatched.
"""
from typing import Callable, Iterable, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from skillconnect.lib.db import conflicts_as_409
from skillconnect.lib.realtime import RealtimeEvent, get_broker
from skillconnect.models.users import User
from skillconnect.services.idempotency_service import IdempotencyService


REPLAY_HEADER = "Idempotent-Replayed"


def replay_response(
    db: Session,
    user: User,
    idempotency_key: Optional[str],
    operation: str,
) -> Optional[JSONResponse]:
    """The stored response for a repeated key, or None to run the operation."""
    record = IdempotencyService(db).find(user.id, idempotency_key, operation)
    if record is None:
        return None
    return JSONResponse(
        status_code=record.status_code,
        content=record.response_body,
        headers={REPLAY_HEADER: "true"},
    )


async def commit_and_respond(
    db: Session,
    user: User,
    idempotency_key: Optional[str],
    operation: str,
    status_code: int,
    build_body: Callable[[], BaseModel],
    events: Iterable[RealtimeEvent] = (),
) -> JSONResponse:
    with conflicts_as_409(db):
        db.flush()
        content = jsonable_encoder(build_body(), by_alias=True)
        IdempotencyService(db).record(user.id, idempotency_key, operation, status_code, content)
        db.commit()

    await get_broker().dispatch(events)
    return JSONResponse(status_code=status_code, content=content)
