"""In-app notifications and the live event hub.

Rows are persisted in ``notifications``; every new row is also pushed to the
user's open SSE streams through ``hub``.
"""
from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from sqlalchemy.orm import Session

from ageless.models_sqlalchemy.models import Notification
from ageless.utils.logger import logger


class NotificationHub:
    """Per-user fan-out of events to asyncio queues (one queue per open stream)."""

    def __init__(self, max_queue_size: int = 100):
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._max_queue_size = max_queue_size

    def subscribe(self, user_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers[user_id].add(queue)
        return queue

    def unsubscribe(self, user_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(user_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            self._subscribers.pop(user_id, None)

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, ()))

    def publish(self, user_id: str, event: str, payload: Dict[str, Any]) -> int:
        """Queue an event for every open stream of ``user_id``. Returns deliveries."""
        delivered = 0
        for queue in list(self._subscribers.get(user_id, ())):
            try:
                queue.put_nowait({"event": event, "data": payload})
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("[notifications] Dropping event %s for slow consumer user=%s", event, user_id)
        return delivered


hub = NotificationHub()


def serialize_notification(n: Notification) -> Dict[str, Any]:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "data": n.data or {},
        "is_read": bool(n.is_read),
        "read_at": n.read_at.isoformat() if n.read_at else None,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


def notify(
    db: Session,
    user_id: str,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data or {},
        is_read=False,
        created_at=datetime.utcnow(),
    )
    db.add(notification)
    if commit:
        db.commit()
        db.refresh(notification)
    else:
        db.flush()
    hub.publish(user_id, "notification:new", serialize_notification(notification))
    return notification


def already_notified(
    db: Session,
    user_id: str,
    type: str,
    entity_id: str,
    vendor_id: Optional[str] = None,
) -> bool:
    rows = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.type == type)
        .all()
    )
    for row in rows:
        data = row.data or {}
        if str(data.get("entityId")) != str(entity_id):
            continue
        if vendor_id is not None and str(data.get("vendorId")) != str(vendor_id):
            continue
        return True
    return False


def notify_once(
    db: Session,
    user_id: str,
    type: str,
    title: str,
    message: str,
    entity_id: str,
    data: Optional[Dict[str, Any]] = None,
    vendor_id: Optional[str] = None,
) -> Optional[Notification]:
    """Create a notification unless one with the same type/entity (and vendor) exists.

    Returns None when skipped. Email/SMS senders use the returned row as
    their idempotency marker.
    """
    if already_notified(db, user_id, type, entity_id, vendor_id):
        logger.info("[notifications] %s already sent for entity=%s user=%s", type, entity_id, user_id)
        return None
    payload = dict(data or {})
    payload["entityId"] = entity_id
    if vendor_id is not None:
        payload["vendorId"] = vendor_id
    return notify(db, user_id, type, title, message, payload)


def list_notifications(
    db: Session,
    user_id: str,
    unread_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    total = query.count()
    rows: List[Notification] = (
        query.order_by(Notification.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    unread = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .count()
    )
    return {
        "items": [serialize_notification(n) for n in rows],
        "total": total,
        "unread_count": unread,
        "page": page,
        "limit": limit,
    }


def mark_read(db: Session, user_id: str, notification_id: str) -> Optional[Notification]:
    row = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if row is None:
        return None
    if not row.is_read:
        row.is_read = True
        row.read_at = datetime.utcnow()
        db.commit()
    return row


def mark_all_read(db: Session, user_id: str) -> int:
    now = datetime.utcnow()
    count = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True, Notification.read_at: now}, synchronize_session=False)
    )
    db.commit()
    return count


def delete_notification(db: Session, user_id: str, notification_id: str) -> bool:
    row = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if row is None:
        return False
    db.delete(row)
    db.commit()
    return True
