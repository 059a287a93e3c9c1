from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from database import get_session
from models import MedicineEntry, Reminder, ReminderFrequency, ReminderType
from services.auth import AuthenticatedUser, get_current_user
from services.reminders import is_reminder_due, parse_reminder_time, schedule_reminder

router = APIRouter(prefix="/reminders", tags=["reminders"])

TIME_PATTERN = r"^\d{2}:\d{2}$"


class ReminderCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    message: Optional[str] = Field(default=None, max_length=1000)
    medicine_id: Optional[int] = None
    reminder_type: ReminderType = ReminderType.DOSAGE
    frequency: ReminderFrequency = ReminderFrequency.DAILY
    reminder_time: str = Field(default="08:00", pattern=TIME_PATTERN)
    days_of_week: list[int] = Field(default_factory=list)
    is_active: bool = True


class ReminderUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    message: Optional[str] = Field(default=None, max_length=1000)
    medicine_id: Optional[int] = None
    reminder_type: Optional[ReminderType] = None
    frequency: Optional[ReminderFrequency] = None
    reminder_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    days_of_week: Optional[list[int]] = None
    is_active: Optional[bool] = None


def reminder_payload(reminder: Reminder, session: Session) -> dict:
    data = reminder.model_dump(exclude={"days_of_week_json"})
    data["days_of_week"] = reminder.days_of_week
    medicine = session.get(MedicineEntry, reminder.medicine_id) if reminder.medicine_id else None
    data["medicine_name"] = medicine.medicine_name if medicine else None
    return data


def _validate_schedule(frequency: ReminderFrequency, reminder_time: str, days_of_week: list[int]):
    try:
        parse_reminder_time(reminder_time)
    except ValueError as exc:
        raise HTTPException(422, str(exc))
    if any(day < 0 or day > 6 for day in days_of_week):
        raise HTTPException(422, "days_of_week values must be between 0 (Sunday) and 6 (Saturday)")
    if frequency == ReminderFrequency.WEEKLY and not days_of_week:
        raise HTTPException(422, "Weekly reminders need at least one day of week")


def _check_medicine(medicine_id: int | None, user: AuthenticatedUser, session: Session):
    if medicine_id is None:
        return
    medicine = session.get(MedicineEntry, medicine_id)
    if not medicine or medicine.user_id != user.id:
        raise HTTPException(422, "Medicine not found in your collection")


def _get_owned_reminder(reminder_id: int, user: AuthenticatedUser, session: Session) -> Reminder:
    reminder = session.get(Reminder, reminder_id)
    if not reminder or reminder.user_id != user.id:
        raise HTTPException(404, "Reminder not found")
    return reminder


def _save(reminder: Reminder, session: Session, failure: str) -> Reminder:
    session.add(reminder)
    try:
        session.commit()
        session.refresh(reminder)
    except Exception:
        session.rollback()
        raise HTTPException(500, failure)
    return reminder


@router.post("", status_code=201)
def create_reminder(
    body: ReminderCreate,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    title = body.title.strip()
    if not title:
        raise HTTPException(422, "Title cannot be empty")
    days = body.days_of_week if body.frequency == ReminderFrequency.WEEKLY else []
    _validate_schedule(body.frequency, body.reminder_time, days)
    _check_medicine(body.medicine_id, current_user, session)

    reminder = Reminder(
        user_id=current_user.id,
        medicine_id=body.medicine_id,
        title=title,
        message=body.message,
        reminder_type=body.reminder_type,
        frequency=body.frequency,
        reminder_time=body.reminder_time,
        is_active=body.is_active,
    )
    reminder.set_days_of_week(days)
    schedule_reminder(reminder)
    return reminder_payload(_save(reminder, session, "Failed to create reminder"), session)


@router.get("")
def list_reminders(
    active_only: bool = Query(default=False),
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    query = select(Reminder).where(Reminder.user_id == current_user.id)
    if active_only:
        query = query.where(Reminder.is_active == True)  # noqa: E712
    rows = session.exec(query.order_by(Reminder.created_at.desc())).all()  # type: ignore[union-attr]
    return [reminder_payload(row, session) for row in rows]


@router.get("/due")
def list_due_reminders(
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    now = datetime.utcnow()
    rows = session.exec(
        select(Reminder)
        .where(Reminder.user_id == current_user.id)
        .order_by(Reminder.next_trigger_at.asc())  # type: ignore[union-attr]
    ).all()
    return [reminder_payload(row, session) for row in rows if is_reminder_due(row, now)]


@router.patch("/{reminder_id}")
def update_reminder(
    reminder_id: int,
    body: ReminderUpdate,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    reminder = _get_owned_reminder(reminder_id, current_user, session)
    updates = body.model_dump(exclude_unset=True)

    if "title" in updates:
        updates["title"] = (updates["title"] or "").strip()
        if not updates["title"]:
            raise HTTPException(422, "Title cannot be empty")
    if "medicine_id" in updates:
        _check_medicine(updates["medicine_id"], current_user, session)

    days = updates.pop("days_of_week", None)
    for key, value in updates.items():
        if value is None and key not in ("message", "medicine_id"):
            continue
        setattr(reminder, key, value)

    if reminder.frequency != ReminderFrequency.WEEKLY:
        reminder.set_days_of_week([])
    elif days is not None:
        reminder.set_days_of_week(days)
    _validate_schedule(reminder.frequency, reminder.reminder_time, reminder.days_of_week)

    reminder.updated_at = datetime.utcnow()
    schedule_reminder(reminder)
    return reminder_payload(_save(reminder, session, "Failed to update reminder"), session)


@router.post("/{reminder_id}/trigger")
def trigger_reminder(
    reminder_id: int,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    reminder = _get_owned_reminder(reminder_id, current_user, session)
    if not reminder.is_active:
        raise HTTPException(422, "Reminder is not active")

    now = datetime.utcnow()
    reminder.last_triggered_at = now
    schedule_reminder(reminder, now=now)
    return reminder_payload(_save(reminder, session, "Failed to trigger reminder"), session)


@router.delete("/{reminder_id}")
def delete_reminder(
    reminder_id: int,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    reminder = _get_owned_reminder(reminder_id, current_user, session)
    session.delete(reminder)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to delete reminder")
    return {"status": "deleted", "id": reminder_id}
