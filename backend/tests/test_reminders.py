from datetime import datetime, timedelta

import pytest
from sqlmodel import Session

from models import Reminder, ReminderFrequency
from services.reminders import compute_next_trigger, is_reminder_due, parse_reminder_time


def test_daily_next_trigger():
    now = datetime(2024, 3, 5, 9, 30)
    assert compute_next_trigger(ReminderFrequency.DAILY, "10:00", now=now) == datetime(2024, 3, 5, 10, 0)
    assert compute_next_trigger(ReminderFrequency.DAILY, "08:00", now=now) == datetime(2024, 3, 6, 8, 0)
    assert compute_next_trigger(ReminderFrequency.DAILY, "09:30", now=now) == datetime(2024, 3, 6, 9, 30)


def test_weekly_next_trigger_uses_sunday_first_days():
    # 2024-03-05 is a Tuesday (2 when Sunday is 0).
    now = datetime(2024, 3, 5, 12, 0)
    assert compute_next_trigger(ReminderFrequency.WEEKLY, "18:00", [2], now=now) == datetime(2024, 3, 5, 18, 0)
    assert compute_next_trigger(ReminderFrequency.WEEKLY, "08:00", [2], now=now) == datetime(2024, 3, 12, 8, 0)
    assert compute_next_trigger(ReminderFrequency.WEEKLY, "08:00", [0, 5], now=now) == datetime(2024, 3, 8, 8, 0)

    with pytest.raises(ValueError):
        compute_next_trigger(ReminderFrequency.WEEKLY, "08:00", [], now=now)


def test_monthly_next_trigger_clamps_to_month_end():
    now = datetime(2024, 1, 31, 12, 0)
    assert compute_next_trigger(ReminderFrequency.MONTHLY, "08:00", now=now, anchor_day=31) == datetime(2024, 2, 29, 8, 0)
    assert compute_next_trigger(ReminderFrequency.MONTHLY, "20:00", now=now, anchor_day=31) == datetime(2024, 1, 31, 20, 0)

    december = datetime(2024, 12, 15, 9, 0)
    assert compute_next_trigger(ReminderFrequency.MONTHLY, "08:00", now=december, anchor_day=15) == datetime(2025, 1, 15, 8, 0)


def test_parse_reminder_time_rejects_garbage():
    assert parse_reminder_time("07:45").hour == 7
    with pytest.raises(ValueError):
        parse_reminder_time("25:00")
    with pytest.raises(ValueError):
        parse_reminder_time("noon")


def test_reminder_crud(client, user_headers, medicine_id):
    created = client.post(
        "/reminders",
        headers=user_headers,
        json={
            "title": "Morning dose",
            "medicine_id": medicine_id,
            "frequency": "weekly",
            "reminder_time": "08:00",
            "days_of_week": [1, 3, 5, 3],
        },
    )
    assert created.status_code == 201, created.text
    payload = created.json()
    assert payload["days_of_week"] == [1, 3, 5]
    assert payload["medicine_name"] == "Dolo 650"
    assert payload["next_trigger_at"] is not None
    reminder_id = payload["id"]

    listing = client.get("/reminders", headers=user_headers)
    assert [row["id"] for row in listing.json()] == [reminder_id]

    switched = client.patch(
        f"/reminders/{reminder_id}",
        headers=user_headers,
        json={"frequency": "daily", "reminder_time": "21:15"},
    )
    assert switched.status_code == 200
    assert switched.json()["days_of_week"] == []
    assert switched.json()["next_trigger_at"].endswith("21:15:00")

    paused = client.patch(f"/reminders/{reminder_id}", headers=user_headers, json={"is_active": False})
    assert paused.json()["is_active"] is False
    active = client.get("/reminders?active_only=true", headers=user_headers)
    assert active.json() == []

    removed = client.delete(f"/reminders/{reminder_id}", headers=user_headers)
    assert removed.status_code == 200
    assert client.get("/reminders", headers=user_headers).json() == []


def test_reminder_validation(client, user_headers, other_headers, medicine_id):
    weekly_without_days = client.post(
        "/reminders",
        headers=user_headers,
        json={"title": "Weekly", "frequency": "weekly", "reminder_time": "08:00"},
    )
    assert weekly_without_days.status_code == 422

    bad_time = client.post("/reminders", headers=user_headers, json={"title": "Late", "reminder_time": "24:30"})
    assert bad_time.status_code == 422

    bad_day = client.post(
        "/reminders",
        headers=user_headers,
        json={"title": "Weekly", "frequency": "weekly", "days_of_week": [7]},
    )
    assert bad_day.status_code == 422

    foreign_medicine = client.post(
        "/reminders",
        headers=other_headers,
        json={"title": "Not mine", "medicine_id": medicine_id},
    )
    assert foreign_medicine.status_code == 422


def test_due_and_trigger(client, engine, user_headers):
    created = client.post("/reminders", headers=user_headers, json={"title": "Refill", "reminder_type": "refill"})
    reminder_id = created.json()["id"]
    assert client.get("/reminders/due", headers=user_headers).json() == []

    with Session(engine) as session:
        reminder = session.get(Reminder, reminder_id)
        reminder.next_trigger_at = datetime.utcnow() - timedelta(minutes=5)
        session.add(reminder)
        session.commit()

    due = client.get("/reminders/due", headers=user_headers)
    assert [row["id"] for row in due.json()] == [reminder_id]

    triggered = client.post(f"/reminders/{reminder_id}/trigger", headers=user_headers)
    assert triggered.status_code == 200
    assert triggered.json()["last_triggered_at"] is not None
    assert client.get("/reminders/due", headers=user_headers).json() == []


def test_is_reminder_due_ignores_inactive():
    past = datetime(2024, 1, 1, 8, 0)
    reminder = Reminder(user_id="u", title="t", next_trigger_at=past, is_active=False)
    assert is_reminder_due(reminder, now=past + timedelta(hours=1)) is False
    reminder.is_active = True
    assert is_reminder_due(reminder, now=past + timedelta(hours=1)) is True
