"""In-app channel: a row in the in-app notification store."""

import uuid
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .base import ChannelError
from .models import InAppNotification


class InAppSender:
    channel = "in_app"

    def __init__(self, db: Session) -> None:
        self._db = db

    def send(self, address: str, message: str, **context: Any) -> str:
        try:
            user_id = uuid.UUID(str(address))
        except ValueError as exc:
            raise ChannelError(f"Invalid user id for in-app notification: {address!r}") from exc

        entity_id = context.get("entity_id")
        notification = InAppNotification(
            id=uuid.uuid4(),
            user_id=user_id,
            title=context.get("title") or "إشعار جديد",
            message=message,
            entity_type=context.get("entity_type"),
            entity_id=str(entity_id) if entity_id else None,
            action_url=context.get("action_url"),
            priority=context.get("priority") or "normal",
            notification_type=context.get("notification_type"),
            source_channel="system",
        )
        self._db.add(notification)
        try:
            self._db.flush()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise ChannelError(f"In-app insert failed: {exc}") from exc
        return str(notification.id)
