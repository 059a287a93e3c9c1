import csv
import io
import re
from datetime import date

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from sqlmodel import Session, select

from database import get_session
from models import MedicineEntry
from services.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["export"])

EXPORT_HEADERS = [
    "Medicine Name",
    "Category",
    "Manufacturer",
    "Use Case",
    "Daily Dosage",
    "Price",
    "Expiry Date",
    "Additional Notes",
    "Created Date",
]
MAX_IMPORT_SIZE = 2 * 1024 * 1024  # 2 MB
PRICE_JUNK = re.compile(r"[^0-9.\-]+")


def _csv_response(filename: str, rows: list[list[str]]) -> StreamingResponse:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerows(rows)
    buffer.seek(0)
    return StreamingResponse(
        iter([buffer.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _normalize_header(header: str) -> str:
    return re.sub(r"\s+", "_", header.strip().lower())


def _parse_price(raw: str) -> float | None:
    cleaned = PRICE_JUNK.sub("", raw or "")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _parse_date(raw: str) -> date | None:
    raw = (raw or "").strip()
    if not raw:
        return None
    return date.fromisoformat(raw)


def row_to_medicine(row: dict[str, str], user_id: str) -> MedicineEntry:
    def value(*keys: str) -> str | None:
        for key in keys:
            text = (row.get(key) or "").strip()
            if text:
                return text
        return None

    name = value("medicine_name", "name")
    if not name:
        raise ValueError("Medicine name is required")
    try:
        expiry = _parse_date(row.get("expiry_date", ""))
    except ValueError as exc:
        raise ValueError(f"Invalid expiry date '{row.get('expiry_date')}', expected YYYY-MM-DD") from exc

    return MedicineEntry(
        user_id=user_id,
        medicine_name=name,
        category=value("category") or "Other",
        manufacturer=value("manufacturer"),
        use_case=value("use_case"),
        daily_dosage=value("daily_dosage"),
        price=_parse_price(row.get("price", "")),
        expiry_date=expiry,
        additional_notes=value("additional_notes", "notes"),
    )


@router.get("/export/medicines.csv")
def export_medicines_csv(
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    medicines = session.exec(
        select(MedicineEntry)
        .where(MedicineEntry.user_id == current_user.id)
        .order_by(MedicineEntry.created_at.asc())  # type: ignore[union-attr]
    ).all()
    if not medicines:
        raise HTTPException(404, "No medicines to export")

    rows: list[list[str]] = [EXPORT_HEADERS]
    for medicine in medicines:
        rows.append([
            medicine.medicine_name,
            medicine.category or "",
            medicine.manufacturer or "",
            medicine.use_case or "",
            medicine.daily_dosage or "",
            "" if medicine.price is None else repr(medicine.price),
            medicine.expiry_date.isoformat() if medicine.expiry_date else "",
            medicine.additional_notes or "",
            medicine.created_at.date().isoformat(),
        ])

    filename = f"medicines-{date.today().isoformat()}.csv"
    return _csv_response(filename, rows)


@router.post("/import/medicines")
async def import_medicines_csv(
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    content = await file.read()
    if len(content) > MAX_IMPORT_SIZE:
        raise HTTPException(422, f"File too large (max {MAX_IMPORT_SIZE // 1024 // 1024}MB)")
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(422, "CSV file must be UTF-8 encoded") from exc

    reader = csv.reader(io.StringIO(text))
    header_row = next(reader, None)
    if not header_row:
        raise HTTPException(422, "No valid data found in CSV file")
    headers = [_normalize_header(header) for header in header_row]

    success = 0
    failed = 0
    errors: list[str] = []
    for line_number, values in enumerate(reader, start=1):
        if not any(cell.strip() for cell in values):
            continue
        row = dict(zip(headers, values))
        try:
            entry = row_to_medicine(row, current_user.id)
        except ValueError as exc:
            failed += 1
            errors.append(f"Row {line_number}: {exc}")
            continue

        session.add(entry)
        try:
            session.commit()
            success += 1
        except Exception as exc:
            session.rollback()
            failed += 1
            errors.append(f"Row {line_number}: {exc.__class__.__name__}")

    if success == 0 and failed == 0:
        raise HTTPException(422, "No valid data found in CSV file")
    return {"success": success, "failed": failed, "errors": errors}
