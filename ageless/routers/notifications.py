import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import User
from ageless.services import notifications
from ageless.services.auth import get_current_active_user, get_user_from_header_or_query
from ageless.utils.logger import logger

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

KEEPALIVE_SECONDS = 15


@router.get("")
async def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return notifications.list_notifications(db, current_user.id, unread_only, page, limit)


@router.get("/stream")
async def stream_notifications(
    request: Request,
    current_user: User = Depends(get_user_from_header_or_query),
):
    """
    Live notification feed over Server-Sent Events.

    EventSource cannot send headers, so the JWT may be passed as ?token=<jwt>.
    A comment line is sent every few seconds to keep proxies from closing the stream.
    """
    user_id = current_user.id
    queue = notifications.hub.subscribe(user_id)
    logger.info(f"[notifications] SSE stream opened user={user_id}")

    async def event_generator():
        try:
            yield f"event: connected\n"
            yield f"data: {json.dumps({'userId': user_id})}\n\n"
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"event: {event['event']}\n"
                yield f"data: {json.dumps(event['data'], default=str)}\n\n"
        finally:
            notifications.hub.unsubscribe(user_id, queue)
            logger.info(f"[notifications] SSE stream closed user={user_id}")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"
        }
    )


@router.post("/read-all")
async def mark_all_read(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    updated = notifications.mark_all_read(db, current_user.id)
    return {"updated": updated}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    row = notifications.mark_read(db, current_user.id, notification_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notifications.serialize_notification(row)


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    if not notifications.delete_notification(db, current_user.id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Notification deleted"}
