"""
Tests for the in-app inbox: listing, read flags and deletion.
"""
from datetime import datetime, timedelta

import pytest

from app.database.models.notification import Notification
from app.database.services.notification_service import NotificationService
from app.logic.exceptions import NotificationNotFoundError
from app.logic.notifications import DomainEvent, EventType, InAppNotificationEmitter
from app.ReqResModels.common import PageParams
from factories import caller_for, headers_for

START = datetime(2026, 6, 1, 9, 0)


def notify(db, user, title="Approval requested", is_read=False, minutes=0):
    row = Notification(
        user_id=user.id,
        company_id=user.company_id,
        event_type="approval.requested",
        expense_id=42,
        title=title,
        message="Expense #42 is waiting for your approval",
        is_read=is_read,
        created_at=START + timedelta(minutes=minutes),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


# ---------------------------------------------------------------------------
# NotificationService
# ---------------------------------------------------------------------------

class TestInbox:
    def test_newest_first_with_unread_count(self, db, manager):
        notify(db, manager, title="first", minutes=0)
        notify(db, manager, title="second", is_read=True, minutes=5)
        notify(db, manager, title="third", minutes=10)

        inbox = NotificationService.get_notifications(db, caller_for(manager), PageParams())

        assert [n.title for n in inbox.notifications] == ["third", "second", "first"]
        assert inbox.total == 3
        assert inbox.unread_count == 2

    def test_unread_only(self, db, manager):
        notify(db, manager, title="seen", is_read=True)
        notify(db, manager, title="new", minutes=1)

        inbox = NotificationService.get_notifications(db, caller_for(manager), PageParams(), unread_only=True)

        assert [n.title for n in inbox.notifications] == ["new"]
        assert inbox.total == 1

    def test_paging(self, db, manager):
        for minute in range(5):
            notify(db, manager, title=f"n{minute}", minutes=minute)

        page = NotificationService.get_notifications(db, caller_for(manager), PageParams(page=2, limit=2))

        assert [n.title for n in page.notifications] == ["n2", "n1"]
        assert page.total_pages == 3

    def test_only_own_notifications_are_listed(self, db, manager, approver_b):
        notify(db, approver_b)
        inbox = NotificationService.get_notifications(db, caller_for(manager), PageParams())
        assert inbox.total == 0

    def test_mark_read(self, db, manager):
        row = notify(db, manager)
        result = NotificationService.mark_read(db, caller_for(manager), row.id)
        assert result.is_read is True
        # Marking twice is harmless
        assert NotificationService.mark_read(db, caller_for(manager), row.id).is_read is True

    def test_mark_all_read_leaves_other_users_alone(self, db, manager, approver_b):
        notify(db, manager)
        notify(db, manager, minutes=1)
        theirs = notify(db, approver_b)

        result = NotificationService.mark_all_read(db, caller_for(manager))

        assert result.updated == 2
        db.refresh(theirs)
        assert theirs.is_read is False

    def test_someone_elses_notification_looks_missing(self, db, manager, approver_b, outsider):
        row = notify(db, approver_b)
        for caller in (caller_for(manager), caller_for(outsider)):
            with pytest.raises(NotificationNotFoundError):
                NotificationService.mark_read(db, caller, row.id)
            with pytest.raises(NotificationNotFoundError):
                NotificationService.delete_notification(db, caller, row.id)

    def test_delete(self, db, manager):
        row = notify(db, manager)
        NotificationService.delete_notification(db, caller_for(manager), row.id)
        assert db.query(Notification).count() == 0

    def test_emitted_events_reach_the_inbox(self, session_factory, db, company, manager):
        InAppNotificationEmitter(session_factory).emit(DomainEvent(
            event_type=EventType.EXPENSE_APPROVED,
            expense_id=7,
            company_id=company.id,
            actor_id=manager.id,
            recipient_ids=[manager.id],
        ))

        inbox = NotificationService.get_notifications(db, caller_for(manager), PageParams())

        assert inbox.unread_count == 1
        assert inbox.notifications[0].message == "Expense #7 was approved"


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class TestNotificationRoutes:
    def test_list_and_mark_read(self, client, db, manager):
        row = notify(db, manager)

        listed = client.get("/api/v1/notifications?unread_only=true", headers=headers_for(manager))
        assert listed.status_code == 200
        assert listed.json()["data"]["unread_count"] == 1

        marked = client.put(f"/api/v1/notifications/{row.id}/read", headers=headers_for(manager))
        assert marked.json()["data"]["is_read"] is True

        after = client.get("/api/v1/notifications?unread_only=true", headers=headers_for(manager)).json()["data"]
        assert after["total"] == 0

    def test_read_all(self, client, db, manager):
        notify(db, manager)
        notify(db, manager, minutes=1)
        response = client.put("/api/v1/notifications/read-all", headers=headers_for(manager))
        assert response.status_code == 200
        assert response.json()["data"]["updated"] == 2

    def test_delete_and_missing(self, client, db, manager, approver_b):
        row = notify(db, manager)

        foreign = client.delete(f"/api/v1/notifications/{row.id}", headers=headers_for(approver_b))
        assert foreign.status_code == 404
        assert foreign.json()["error"]["code"] == "NOT_FOUND"

        deleted = client.delete(f"/api/v1/notifications/{row.id}", headers=headers_for(manager))
        assert deleted.status_code == 200
        assert deleted.json()["data"]["deleted"] is True

    def test_requires_identity(self, client):
        assert client.get("/api/v1/notifications").status_code == 401
