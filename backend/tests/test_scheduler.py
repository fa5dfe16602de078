"""Tests for due-reminder selection."""

import uuid
from datetime import UTC, datetime, timedelta

from conftest import TODAY

from expiry_sentinel.catalog.models import ReminderRule
from expiry_sentinel.reminders.scheduler import active_recipients, iter_due_reminders, local_today


class TestLocalToday:
    def test_riyadh_is_ahead_of_utc(self):
        # 22:30 UTC is already 01:30 the next day in Riyadh.
        assert local_today(datetime(2026, 3, 9, 22, 30, tzinfo=UTC)) == TODAY

    def test_same_day(self):
        assert local_today(datetime(2026, 3, 10, 12, 0, tzinfo=UTC)) == TODAY

    def test_naive_is_treated_as_utc(self):
        assert local_today(datetime(2026, 3, 9, 21, 0)) == TODAY


class TestReminderRule:
    def test_malformed_offsets_skipped(self, caplog):
        rule = ReminderRule(name="Broken", days_before=[7, "x", None, "3"], is_active=True)
        assert rule.offsets() == {7, 3}
        assert rule.fires_on(7)
        assert not rule.fires_on(0)
        assert "ignoring invalid days_before entry 'x'" in caplog.text


class TestIterDueReminders:
    def test_exact_day_match(self, db_session, make_item):
        make_item(title="seven", expiry_date=TODAY + timedelta(days=7))
        make_item(title="six", expiry_date=TODAY + timedelta(days=6))
        make_item(title="today", expiry_date=TODAY)
        due = list(iter_due_reminders(db_session, TODAY))
        assert sorted(d.item.title for d in due) == ["seven", "today"]
        assert {d.days_until_due for d in due} == {7, 0}

    def test_missed_day_is_not_caught_up(self, db_session, make_item):
        make_item(expiry_date=TODAY + timedelta(days=2))
        assert list(iter_due_reminders(db_session, TODAY)) == []

    def test_inactive_items_excluded(self, db_session, make_item):
        make_item(status="archived")
        make_item(workflow_status="finished")
        assert list(iter_due_reminders(db_session, TODAY)) == []

    def test_workflow_in_progress_included(self, db_session, make_item):
        make_item(workflow_status="in_progress")
        assert len(list(iter_due_reminders(db_session, TODAY))) == 1

    def test_item_without_rule_never_fires(self, db_session, make_item):
        make_item(reminder_rule=None)
        assert list(iter_due_reminders(db_session, TODAY)) == []

    def test_inactive_rule_never_fires(self, db_session, make_item, rule):
        rule.is_active = False
        db_session.commit()
        make_item()
        assert list(iter_due_reminders(db_session, TODAY)) == []

    def test_deadlines_replace_item_expiry(self, db_session, make_item, make_deadline):
        # The item's own date is due today, but active deadlines take over.
        item = make_item(expiry_date=TODAY)
        make_deadline(item, "Insurance", due_date=TODAY + timedelta(days=3))
        make_deadline(item, "License", due_date=TODAY + timedelta(days=5))
        due = list(iter_due_reminders(db_session, TODAY))
        assert [(d.deadline_label, d.days_until_due) for d in due] == [("Insurance", 3)]
        assert due[0].deadline_id is not None

    def test_deadline_rule_overrides_item_rule(self, db_session, make_item, make_deadline):
        custom = ReminderRule(id=uuid.uuid4(), name="Custom", days_before=[30], is_active=True)
        db_session.add(custom)
        db_session.commit()
        item = make_item()
        make_deadline(item, "Permit", due_date=TODAY + timedelta(days=30), reminder_rule=custom)
        due = list(iter_due_reminders(db_session, TODAY))
        assert [d.days_until_due for d in due] == [30]

    def test_malformed_rule_does_not_hide_other_items(self, db_session, make_item):
        broken = ReminderRule(id=uuid.uuid4(), name="Broken", days_before=["soon", 0], is_active=True)
        db_session.add(broken)
        db_session.commit()
        make_item(title="broken rule", reminder_rule=broken)
        make_item(title="standard rule")
        due = list(iter_due_reminders(db_session, TODAY))
        assert sorted(d.item.title for d in due) == ["broken rule", "standard rule"]

    def test_completed_deadlines_ignored(self, db_session, make_item, make_deadline):
        item = make_item(expiry_date=TODAY + timedelta(days=1))
        make_deadline(item, "Insurance", due_date=TODAY, status="completed")
        due = list(iter_due_reminders(db_session, TODAY))
        assert [(d.deadline, d.days_until_due) for d in due] == [(None, 1)]

    def test_active_recipients(self, db_session, make_item, make_recipient):
        active = make_recipient("Active")
        inactive = make_recipient("Inactive", is_active=False)
        item = make_item(recipients=[active, inactive])
        assert active_recipients(item) == [active]
