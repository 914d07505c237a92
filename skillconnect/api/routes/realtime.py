"""
Real-time WebSocket endpoint.

Connect with ``/ws?token=<jwt>``. The connection joins its private
``user:<id>`` channel automatically and may send::

    {"action": "subscribe", "channel": "service-request:<id>"}
    {"action": "subscribe", "channel": "bookings"}
    {"action": "unsubscribe", "channel": "..."}
    {"action": "ping"}

Every successful subscribe is answered with a ``subscribed`` message whose
``data`` is the current state of the channel, so a reconnecting client can
resync without relying on events it missed while offline.
"""
import json
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from skillconnect.api.middleware.error_handler import (
    AppException,
    BadRequestException,
    ForbiddenException,
)
from skillconnect.api.schemas import BookingOut, ServiceRequestOut
from skillconnect.lib.db import get_db_context
from skillconnect.lib.logging import get_logger
from skillconnect.lib.realtime import BOOKINGS_CHANNEL, get_broker, user_channel
from skillconnect.models.users import User
from skillconnect.services.auth_service import AuthService
from skillconnect.services.booking_service import BookingService
from skillconnect.services.notification_service import NotificationService
from skillconnect.services.service_request_service import ServiceRequestService


logger = get_logger(__name__)
router = APIRouter(tags=["realtime"])

REQUEST_CHANNEL_PREFIX = "service-request:"


def channel_snapshot(db: Session, user: User, channel: str) -> Dict[str, Any]:
    """
    Authorize ``user`` for ``channel`` and return its current state.

    Raises:
        ForbiddenException: If the user may not follow the channel
        NotFoundException: If the service request does not exist
        BadRequestException: For unknown channel names
    """
    if channel == BOOKINGS_CHANNEL:
        bookings = BookingService(db).list_for_user(user)
        return {"bookings": [BookingOut.model_validate(b).model_dump(mode="json", by_alias=True) for b in bookings]}

    if channel.startswith(REQUEST_CHANNEL_PREFIX):
        try:
            request_id = UUID(channel[len(REQUEST_CHANNEL_PREFIX):])
        except ValueError:
            raise BadRequestException(f"Invalid channel: {channel}")
        request = ServiceRequestService(db).get_visible_request(user, request_id)
        return {"request": ServiceRequestOut.model_validate(request).model_dump(mode="json", by_alias=True)}

    if channel == user_channel(user.id):
        return {"unreadCount": NotificationService(db).unread_count(user.id)}

    if channel.startswith("user:"):
        raise ForbiddenException("Cannot subscribe to another user's channel")
    raise BadRequestException(f"Unknown channel: {channel}")


def authenticate(token: Optional[str]) -> Optional[User]:
    if not token:
        return None
    with get_db_context() as db:
        try:
            user = AuthService(db).user_for_token(token)
        except AppException:
            return None
        if user.banned:
            return None
        return user


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: Optional[str] = Query(None)):
    user = authenticate(token)
    if user is None:
        logger.warning("Rejected realtime connection", extra={"reason": "invalid token"})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    broker = get_broker()
    subscriber = broker.register(user.id, user.is_admin, websocket.send_json, websocket.close)
    await websocket.send_json({
        "event": "connected",
        "channel": user_channel(user.id),
        "data": {"userId": str(user.id)},
    })

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"event": "error", "data": {"message": "Messages must be JSON"}})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"event": "error", "data": {"message": "Messages must be JSON objects"}})
                continue

            action = message.get("action")
            channel = message.get("channel") or ""

            if action == "ping":
                await websocket.send_json({"event": "pong"})
            elif action == "subscribe":
                try:
                    with get_db_context() as db:
                        snapshot = channel_snapshot(db, user, channel)
                except AppException as exc:
                    await websocket.send_json({
                        "event": "error",
                        "channel": channel,
                        "data": {"message": exc.message, "status": exc.status_code},
                    })
                    continue
                broker.subscribe(subscriber.id, channel)
                await websocket.send_json({"event": "subscribed", "channel": channel, "data": snapshot})
            elif action == "unsubscribe":
                broker.unsubscribe(subscriber.id, channel)
                await websocket.send_json({"event": "unsubscribed", "channel": channel})
            else:
                await websocket.send_json({"event": "error", "data": {"message": f"Unknown action: {action}"}})
    except WebSocketDisconnect:
        logger.info("Realtime connection closed", extra={"user_id": str(user.id)})
    finally:
        broker.unregister(subscriber.id)
