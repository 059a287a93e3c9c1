import os
from pathlib import Path

from sqlalchemy import inspect
from sqlmodel import SQLModel, Session, create_engine

DB_FILE = Path(os.getenv("MEDASSIST_DB_FILE", str(Path(__file__).resolve().parent / "medassist.db")))
DATABASE_URL = f"sqlite:///{DB_FILE}"

engine = create_engine(DATABASE_URL, echo=False, connect_args={"check_same_thread": False})


REQUIRED_COLUMNS = {
    "indian_medicines": {
        "id",
        "name",
        "generic_name",
        "therapeutic_class",
        "created_at",
    },
    "medicine_entries": {
        "id",
        "user_id",
        "medicine_name",
        "category",
        "price",
        "expiry_date",
        "created_at",
        "updated_at",
    },
    "reminders": {
        "id",
        "user_id",
        "medicine_id",
        "title",
        "reminder_type",
        "frequency",
        "reminder_time",
        "days_of_week_json",
        "is_active",
        "next_trigger_at",
        "last_triggered_at",
    },
}


def _schema_needs_rebuild() -> bool:
    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())

    for table_name, required_cols in REQUIRED_COLUMNS.items():
        if table_name not in existing_tables:
            continue
        existing_cols = {col["name"] for col in inspector.get_columns(table_name)}
        if not required_cols.issubset(existing_cols):
            return True

    return False


def create_db():
    if _schema_needs_rebuild():
        print("[DB] Schema mismatch detected. Rebuilding local SQLite schema.")
        SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
