from collections import defaultdict
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from database import get_session
from models import MedicineEntry, UsageAction, UsageLog
from services.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["analytics"])

EXPIRING_WINDOW_DAYS = 30
UPCOMING_EXPIRY_WINDOW_DAYS = 90
TOP_N = 10


@router.get("/analytics")
def get_analytics(
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    medicines = session.exec(
        select(MedicineEntry).where(MedicineEntry.user_id == current_user.id)
    ).all()
    usage_logs = session.exec(
        select(UsageLog).where(
            UsageLog.user_id == current_user.id,
            UsageLog.action_type == UsageAction.TAKE_DOSE,
        )
    ).all()

    today = date.today()
    expiring_cutoff = today + timedelta(days=EXPIRING_WINDOW_DAYS)

    total_value = 0.0
    expiring_count = 0
    categories: dict[str, dict[str, float]] = defaultdict(lambda: {"count": 0, "value": 0.0})
    monthly: dict[str, float] = defaultdict(float)
    upcoming = []

    for medicine in medicines:
        price = medicine.price or 0.0
        total_value += price

        category = medicine.category or "Other"
        categories[category]["count"] += 1
        categories[category]["value"] += price

        if medicine.price and medicine.created_at:
            monthly[medicine.created_at.strftime("%Y-%m")] += medicine.price

        if medicine.expiry_date is not None:
            if medicine.expiry_date <= expiring_cutoff:
                expiring_count += 1
            days_until = (medicine.expiry_date - today).days
            if days_until <= UPCOMING_EXPIRY_WINDOW_DAYS:
                upcoming.append({
                    "medicine": medicine.medicine_name,
                    "expiry": medicine.expiry_date.isoformat(),
                    "days_until_expiry": days_until,
                })

    names_by_id = {medicine.id: medicine.medicine_name for medicine in medicines}
    usage: dict[str, int] = defaultdict(int)
    for log in usage_logs:
        name = names_by_id.get(log.medicine_id)
        if name:
            usage[name] += 1

    categories_summary = [
        {"category": category, "count": int(stats["count"]), "value": round(stats["value"], 2)}
        for category, stats in sorted(categories.items())
    ]
    monthly_spending = [
        {"month": month, "amount": round(amount, 2)}
        for month, amount in sorted(monthly.items())
    ]
    usage_patterns = [
        {"medicine": name, "usage": count}
        for name, count in sorted(usage.items(), key=lambda item: (-item[1], item[0]))[:TOP_N]
    ]
    upcoming_expiries = sorted(upcoming, key=lambda item: item["days_until_expiry"])[:TOP_N]

    return {
        "generated_at": datetime.utcnow().isoformat(),
        "total_medicines": len(medicines),
        "total_value": round(total_value, 2),
        "expiring_medicines": expiring_count,
        "categories_summary": categories_summary,
        "monthly_spending": monthly_spending,
        "usage_patterns": usage_patterns,
        "upcoming_expiries": upcoming_expiries,
    }
