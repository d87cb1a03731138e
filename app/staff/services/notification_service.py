"""
Notification Service - decides which notification events a state change emits.

Events are written to the `notification_events` outbox in the caller's
transaction, so an event exists if and only if the change it describes was
committed. Delivery (Telegram, push, email) belongs to the consumer of the
outbox. Activity-feed entries for group pages are recorded the same way.
"""
import logging
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core import clock
from app.staff.models.notifications import ActivityEntry, NotificationEvent

logger = logging.getLogger(__name__)

# Типы событий для внешнего компонента уведомлений
BOOKING_CONFIRMED = "booking_confirmed"
BOOKING_CANCELLED = "booking_cancelled"
LESSON_COMPLETED = "lesson_completed"
EXAM_FORM_OPENED = "exam_form_opened"
EXAM_REQUEST_SUBMITTED = "exam_request_submitted"
EXAM_REQUEST_APPROVED = "exam_request_approved"
EXAM_REQUEST_REJECTED = "exam_request_rejected"
EXAM_PASSED = "exam_passed"
EXAM_FAILED = "exam_failed"

# Типы записей ленты активности
ACTIVITY_EXAM_FORM_CREATED = "exam_form_created"
ACTIVITY_EXAM_REQUESTED = "exam_requested"
ACTIVITY_EXAM_PASSED = "exam_passed"
ACTIVITY_EXAM_FAILED = "exam_failed"


def _json_safe(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Даты и время в payload хранятся строками"""
    result = {}
    for key, value in payload.items():
        if isinstance(value, (date, datetime)):
            result[key] = value.isoformat()
        elif isinstance(value, time):
            result[key] = value.strftime("%H:%M")
        else:
            result[key] = value
    return result


async def emit_event(
    session: AsyncSession,
    event_type: str,
    recipient_id: int,
    payload: Dict[str, Any],
    now: Optional[datetime] = None,
) -> NotificationEvent:
    event = NotificationEvent(
        type=event_type,
        recipient_id=recipient_id,
        payload=_json_safe(payload),
        created_at=now or clock.now(),
    )
    session.add(event)
    logger.debug(f"Queued {event_type} for user {recipient_id}")
    return event


async def emit_to_many(
    session: AsyncSession,
    event_type: str,
    recipient_ids: Iterable[int],
    payload: Dict[str, Any],
    now: Optional[datetime] = None,
) -> List[NotificationEvent]:
    """Одно событие каждому получателю, без повторов"""
    events = []
    seen = set()
    for recipient_id in recipient_ids:
        if recipient_id in seen:
            continue
        seen.add(recipient_id)
        events.append(await emit_event(session, event_type, recipient_id, payload, now))
    return events


async def record_activity(
    session: AsyncSession,
    group_id: Optional[int],
    actor_id: int,
    activity_type: str,
    payload: Dict[str, Any],
    now: Optional[datetime] = None,
) -> ActivityEntry:
    entry = ActivityEntry(
        group_id=group_id,
        actor_id=actor_id,
        type=activity_type,
        payload=_json_safe(payload),
        created_at=now or clock.now(),
    )
    session.add(entry)
    return entry
