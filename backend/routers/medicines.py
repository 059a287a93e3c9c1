from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlmodel import Session, func, select

from database import get_session
from models import MedicineEntry, Reminder, SharedMedicine, UsageAction, UsageLog
from services.auth import AuthenticatedUser, get_current_user
from services.reference_store import escape_like

router = APIRouter(prefix="/medicines", tags=["medicines"])

EXPIRY_CRITICAL_DAYS = 7
EXPIRY_WARNING_DAYS = 30


class MedicineCreate(BaseModel):
    medicine_name: str = Field(min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, max_length=80)
    manufacturer: Optional[str] = Field(default=None, max_length=200)
    use_case: Optional[str] = Field(default=None, max_length=500)
    daily_dosage: Optional[str] = Field(default=None, max_length=200)
    price: Optional[float] = Field(default=None, ge=0)
    expiry_date: Optional[date] = None
    additional_notes: Optional[str] = Field(default=None, max_length=2000)
    photo_url: Optional[str] = Field(default=None, max_length=1000)


class MedicineUpdate(BaseModel):
    medicine_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, max_length=80)
    manufacturer: Optional[str] = Field(default=None, max_length=200)
    use_case: Optional[str] = Field(default=None, max_length=500)
    daily_dosage: Optional[str] = Field(default=None, max_length=200)
    price: Optional[float] = Field(default=None, ge=0)
    expiry_date: Optional[date] = None
    additional_notes: Optional[str] = Field(default=None, max_length=2000)
    photo_url: Optional[str] = Field(default=None, max_length=1000)


def expiry_status(expiry_date: date | None, today: date | None = None) -> tuple[str | None, int | None]:
    if expiry_date is None:
        return None, None
    days_left = (expiry_date - (today or date.today())).days
    if days_left < 0:
        return "expired", days_left
    if days_left <= EXPIRY_CRITICAL_DAYS:
        return "critical", days_left
    if days_left <= EXPIRY_WARNING_DAYS:
        return "warning", days_left
    return "ok", days_left


def medicine_payload(entry: MedicineEntry) -> dict:
    data = entry.model_dump()
    status, days_left = expiry_status(entry.expiry_date)
    data["expiry_status"] = status
    data["days_until_expiry"] = days_left
    return data


def get_owned_medicine(medicine_id: int, user: AuthenticatedUser, session: Session) -> MedicineEntry:
    entry = session.get(MedicineEntry, medicine_id)
    if not entry or entry.user_id != user.id:
        raise HTTPException(404, "Medicine not found")
    return entry


@router.post("", status_code=201)
def create_medicine(
    body: MedicineCreate,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    name = body.medicine_name.strip()
    if not name:
        raise HTTPException(422, "Medicine name cannot be empty")

    entry = MedicineEntry(**body.model_dump(), user_id=current_user.id)
    entry.medicine_name = name
    entry.category = (body.category or "").strip() or None
    session.add(entry)
    try:
        session.commit()
        session.refresh(entry)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to save medicine")

    return medicine_payload(entry)


@router.get("")
def list_medicines(
    search: Optional[str] = Query(default=None, max_length=200),
    category: Optional[str] = Query(default=None, max_length=80),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    query = select(MedicineEntry).where(MedicineEntry.user_id == current_user.id)
    if search:
        pattern = f"%{escape_like(search.strip())}%"
        query = query.where(MedicineEntry.medicine_name.ilike(pattern, escape="\\"))  # type: ignore[union-attr]
    if category:
        query = query.where(MedicineEntry.category == category.strip())

    total = session.exec(select(func.count()).select_from(query.subquery())).one()
    rows = session.exec(
        query
        .order_by(MedicineEntry.created_at.desc(), MedicineEntry.id.desc())  # type: ignore[union-attr]
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return {
        "medicines": [medicine_payload(row) for row in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.get("/expiring")
def list_expiring(
    days: int = Query(default=EXPIRY_WARNING_DAYS, ge=0, le=365),
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    cutoff = date.today() + timedelta(days=days)
    rows = session.exec(
        select(MedicineEntry)
        .where(
            MedicineEntry.user_id == current_user.id,
            MedicineEntry.expiry_date.is_not(None),  # type: ignore[union-attr]
            MedicineEntry.expiry_date <= cutoff,  # type: ignore[operator]
        )
        .order_by(MedicineEntry.expiry_date.asc())  # type: ignore[union-attr]
    ).all()
    return [medicine_payload(row) for row in rows]


@router.get("/{medicine_id}")
def get_medicine(
    medicine_id: int,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    return medicine_payload(get_owned_medicine(medicine_id, current_user, session))


@router.patch("/{medicine_id}")
def update_medicine(
    medicine_id: int,
    body: MedicineUpdate,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    entry = get_owned_medicine(medicine_id, current_user, session)
    updates = body.model_dump(exclude_unset=True)
    if "medicine_name" in updates:
        name = (updates["medicine_name"] or "").strip()
        if not name:
            raise HTTPException(422, "Medicine name cannot be empty")
        updates["medicine_name"] = name

    for key, value in updates.items():
        setattr(entry, key, value)
    entry.updated_at = datetime.utcnow()

    session.add(entry)
    try:
        session.commit()
        session.refresh(entry)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to update medicine")
    return medicine_payload(entry)


@router.delete("/{medicine_id}")
def delete_medicine(
    medicine_id: int,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    entry = get_owned_medicine(medicine_id, current_user, session)

    for model in (SharedMedicine, UsageLog):
        dependents = session.exec(select(model).where(model.medicine_id == medicine_id)).all()
        for row in dependents:
            session.delete(row)
    # Reminders outlive the medicine they point at.
    for reminder in session.exec(select(Reminder).where(Reminder.medicine_id == medicine_id)).all():
        reminder.medicine_id = None
        session.add(reminder)
    session.delete(entry)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to delete medicine")
    return {"status": "deleted", "id": medicine_id}


@router.post("/{medicine_id}/doses", status_code=201)
def record_dose(
    medicine_id: int,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    entry = get_owned_medicine(medicine_id, current_user, session)
    log = UsageLog(user_id=current_user.id, medicine_id=entry.id, action_type=UsageAction.TAKE_DOSE)
    session.add(log)
    try:
        session.commit()
        session.refresh(log)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to record dose")
    return log.model_dump()
