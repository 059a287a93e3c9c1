import json
import secrets
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class ReminderType(str, Enum):
    DOSAGE = "dosage"
    REFILL = "refill"
    EXPIRY = "expiry"
    APPOINTMENT = "appointment"


class ReminderFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class FamilyRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"


class UsageAction(str, Enum):
    TAKE_DOSE = "take_dose"


def generate_invite_code() -> str:
    return secrets.token_hex(4).upper()


class IndianMedicine(SQLModel, table=True):
    __tablename__ = "indian_medicines"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    generic_name: Optional[str] = None
    therapeutic_class: Optional[str] = None
    manufacturer: Optional[str] = None
    composition: Optional[str] = None
    storage_conditions: Optional[str] = None
    schedule: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class MedicineEntry(SQLModel, table=True):
    __tablename__ = "medicine_entries"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    medicine_name: str
    category: Optional[str] = None
    manufacturer: Optional[str] = None
    use_case: Optional[str] = None
    daily_dosage: Optional[str] = None
    price: Optional[float] = None
    expiry_date: Optional[date] = None
    additional_notes: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Reminder(SQLModel, table=True):
    __tablename__ = "reminders"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    medicine_id: Optional[int] = Field(default=None, foreign_key="medicine_entries.id")
    title: str
    message: Optional[str] = None
    reminder_type: ReminderType = ReminderType.DOSAGE
    frequency: ReminderFrequency = ReminderFrequency.DAILY
    reminder_time: str = "08:00"
    days_of_week_json: str = Field(default="[]")
    is_active: bool = True
    next_trigger_at: Optional[datetime] = None
    last_triggered_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def days_of_week(self) -> list[int]:
        return json.loads(self.days_of_week_json)

    def set_days_of_week(self, val: list[int]):
        self.days_of_week_json = json.dumps(sorted(set(val)))


class FamilyGroup(SQLModel, table=True):
    __tablename__ = "family_groups"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    invite_code: str = Field(default_factory=generate_invite_code, unique=True, index=True)
    owner_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class FamilyMember(SQLModel, table=True):
    __tablename__ = "family_members"

    id: Optional[int] = Field(default=None, primary_key=True)
    family_group_id: int = Field(foreign_key="family_groups.id", index=True)
    user_id: str = Field(index=True)
    role: FamilyRole = FamilyRole.MEMBER
    joined_at: datetime = Field(default_factory=datetime.utcnow)


class SharedMedicine(SQLModel, table=True):
    __tablename__ = "shared_medicines"

    id: Optional[int] = Field(default=None, primary_key=True)
    family_group_id: int = Field(foreign_key="family_groups.id", index=True)
    medicine_id: int = Field(foreign_key="medicine_entries.id")
    shared_by: str
    can_edit: bool = False
    shared_at: datetime = Field(default_factory=datetime.utcnow)


class UsageLog(SQLModel, table=True):
    __tablename__ = "usage_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    medicine_id: Optional[int] = Field(default=None, foreign_key="medicine_entries.id")
    action_type: UsageAction = UsageAction.TAKE_DOSE
    created_at: datetime = Field(default_factory=datetime.utcnow)
