"""
Domain events and the emitters that deliver them.

Events are emitted only after the transaction that produced them has
committed. Delivery is best effort: a failing emitter is logged and skipped,
it never affects the request that triggered it.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

import requests

from app import config
from app.database.database import SessionLocal
from app.database.models.notification import Notification

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    EXPENSE_SUBMITTED = "expense.submitted"
    EXPENSE_APPROVED = "expense.approved"
    EXPENSE_REJECTED = "expense.rejected"
    APPROVAL_REQUESTED = "approval.requested"


@dataclass
class DomainEvent:
    event_type: EventType
    expense_id: int
    company_id: int
    actor_id: int
    recipient_ids: List[int] = field(default_factory=list)
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["event_type"] = self.event_type.value
        data["occurred_at"] = self.occurred_at.isoformat()
        return data


_TITLES = {
    EventType.EXPENSE_SUBMITTED: "Expense submitted",
    EventType.EXPENSE_APPROVED: "Expense approved",
    EventType.EXPENSE_REJECTED: "Expense rejected",
    EventType.APPROVAL_REQUESTED: "Approval requested",
}


def describe(event: DomainEvent) -> str:
    if event.event_type == EventType.APPROVAL_REQUESTED:
        return f"Expense #{event.expense_id} is waiting for your approval"
    if event.event_type == EventType.EXPENSE_REJECTED:
        reason = event.payload.get("reason")
        suffix = f": {reason}" if reason else ""
        return f"Expense #{event.expense_id} was rejected{suffix}"
    if event.event_type == EventType.EXPENSE_APPROVED:
        return f"Expense #{event.expense_id} was approved"
    return f"Expense #{event.expense_id} was submitted for approval"


class NotificationEmitter:
    def emit(self, event: DomainEvent) -> None:
        raise NotImplementedError


class LoggingNotificationEmitter(NotificationEmitter):
    def emit(self, event: DomainEvent) -> None:
        logger.info(
            f"Event {event.event_type.value} expense={event.expense_id} "
            f"actor={event.actor_id} recipients={event.recipient_ids}"
        )


class InAppNotificationEmitter(NotificationEmitter):
    """Writes one Notification row per recipient in a session of its own"""

    def __init__(self, session_factory: Callable = SessionLocal):
        self.session_factory = session_factory

    def emit(self, event: DomainEvent) -> None:
        if not event.recipient_ids:
            return
        db = self.session_factory()
        try:
            for user_id in dict.fromkeys(event.recipient_ids):
                db.add(Notification(
                    user_id=user_id,
                    company_id=event.company_id,
                    event_type=event.event_type.value,
                    expense_id=event.expense_id,
                    title=_TITLES[event.event_type],
                    message=describe(event),
                    created_at=datetime.utcnow(),
                ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class WebhookNotificationEmitter(NotificationEmitter):
    def __init__(self, urls: Optional[List[str]] = None, timeout: Optional[float] = None, session=None):
        self.urls = list(config.WEBHOOK_URLS if urls is None else urls)
        self.timeout = config.WEBHOOK_TIMEOUT_SECONDS if timeout is None else timeout
        self.session = session or requests

    def emit(self, event: DomainEvent) -> None:
        body = event.to_dict()
        for url in self.urls:
            try:
                response = self.session.post(url, json=body, timeout=self.timeout)
                response.raise_for_status()
            except requests.RequestException:
                logger.warning(f"Webhook delivery of {event.event_type.value} to {url} failed", exc_info=True)


class CompositeNotificationEmitter(NotificationEmitter):
    """Fans an event out to several emitters; one failing emitter does not stop the others"""

    def __init__(self, emitters: List[NotificationEmitter]):
        self.emitters = list(emitters)

    def emit(self, event: DomainEvent) -> None:
        for emitter in self.emitters:
            try:
                emitter.emit(event)
            except Exception:
                logger.exception(
                    f"Dropping {event.event_type.value} for expense {event.expense_id} "
                    f"in {type(emitter).__name__}"
                )


class BackgroundNotificationEmitter(NotificationEmitter):
    """Defers delivery to FastAPI BackgroundTasks so it runs after the response is sent"""

    def __init__(self, background_tasks, delegate: NotificationEmitter):
        self.background_tasks = background_tasks
        self.delegate = delegate

    def emit(self, event: DomainEvent) -> None:
        self.background_tasks.add_task(safe_emit, self.delegate, event)


def safe_emit(emitter: Optional[NotificationEmitter], event: DomainEvent) -> None:
    if emitter is None:
        return
    try:
        emitter.emit(event)
    except Exception:
        logger.exception(f"Dropping {event.event_type.value} for expense {event.expense_id}")


def build_default_emitter() -> NotificationEmitter:
    emitters: List[NotificationEmitter] = [LoggingNotificationEmitter(), InAppNotificationEmitter()]
    if config.WEBHOOK_URLS:
        emitters.append(WebhookNotificationEmitter())
    return CompositeNotificationEmitter(emitters)
