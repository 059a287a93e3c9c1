from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from database import get_session
from models import FamilyGroup, FamilyMember, FamilyRole, MedicineEntry, SharedMedicine
from services.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/family", tags=["family"])


class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=1000)


class JoinRequest(BaseModel):
    invite_code: str = Field(min_length=4, max_length=32)


class ShareRequest(BaseModel):
    medicine_id: int
    can_edit: bool = False


def _membership(group_id: int, user_id: str, session: Session) -> FamilyMember | None:
    return session.exec(
        select(FamilyMember).where(
            FamilyMember.family_group_id == group_id,
            FamilyMember.user_id == user_id,
        )
    ).first()


def _require_member(group_id: int, user: AuthenticatedUser, session: Session) -> tuple[FamilyGroup, FamilyMember]:
    group = session.get(FamilyGroup, group_id)
    if not group:
        raise HTTPException(404, "Family group not found")
    member = _membership(group_id, user.id, session)
    if not member:
        raise HTTPException(403, "You are not a member of this family group")
    return group, member


def _group_payload(group: FamilyGroup, session: Session, role: FamilyRole | None = None) -> dict:
    data = group.model_dump()
    members = session.exec(select(FamilyMember).where(FamilyMember.family_group_id == group.id)).all()
    data["member_count"] = len(members)
    data["members"] = [
        {"user_id": member.user_id, "role": member.role.value, "joined_at": member.joined_at}
        for member in members
    ]
    if role is not None:
        data["role"] = role.value
    return data


@router.post("/groups", status_code=201)
def create_group(
    body: GroupCreate,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    name = body.name.strip()
    if not name:
        raise HTTPException(422, "Group name cannot be empty")

    group = FamilyGroup(name=name, description=body.description, owner_id=current_user.id)
    session.add(group)
    try:
        session.commit()
        session.refresh(group)
        session.add(FamilyMember(family_group_id=group.id, user_id=current_user.id, role=FamilyRole.OWNER))
        session.commit()
        session.refresh(group)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to create family group")

    return _group_payload(group, session, FamilyRole.OWNER)


@router.get("/groups")
def list_groups(
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    memberships = session.exec(select(FamilyMember).where(FamilyMember.user_id == current_user.id)).all()
    result = []
    for member in memberships:
        group = session.get(FamilyGroup, member.family_group_id)
        if group:
            result.append(_group_payload(group, session, member.role))
    return result


@router.post("/join")
def join_group(
    body: JoinRequest,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    code = body.invite_code.strip().upper()
    group = session.exec(select(FamilyGroup).where(FamilyGroup.invite_code == code)).first()
    if not group:
        raise HTTPException(404, "Invalid invite code")
    if _membership(group.id, current_user.id, session):
        raise HTTPException(409, "You are already a member of this family group")

    member = FamilyMember(family_group_id=group.id, user_id=current_user.id, role=FamilyRole.MEMBER)
    session.add(member)
    try:
        session.commit()
        session.refresh(group)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to join family group")
    return _group_payload(group, session, FamilyRole.MEMBER)


@router.post("/groups/{group_id}/share", status_code=201)
def share_medicine(
    group_id: int,
    body: ShareRequest,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    _require_member(group_id, current_user, session)
    medicine = session.get(MedicineEntry, body.medicine_id)
    if not medicine or medicine.user_id != current_user.id:
        raise HTTPException(422, "You can only share medicines from your own collection")

    existing = session.exec(
        select(SharedMedicine).where(
            SharedMedicine.family_group_id == group_id,
            SharedMedicine.medicine_id == body.medicine_id,
        )
    ).first()
    if existing:
        raise HTTPException(409, "Medicine already shared with this group")

    shared = SharedMedicine(
        family_group_id=group_id,
        medicine_id=body.medicine_id,
        shared_by=current_user.id,
        can_edit=body.can_edit,
    )
    session.add(shared)
    try:
        session.commit()
        session.refresh(shared)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to share medicine")

    result = shared.model_dump()
    result["medicine_name"] = medicine.medicine_name
    return result


@router.get("/groups/{group_id}/medicines")
def list_shared_medicines(
    group_id: int,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    _require_member(group_id, current_user, session)
    shares = session.exec(
        select(SharedMedicine)
        .where(SharedMedicine.family_group_id == group_id)
        .order_by(SharedMedicine.shared_at.desc())  # type: ignore[union-attr]
    ).all()

    result = []
    for share in shares:
        medicine = session.get(MedicineEntry, share.medicine_id)
        if not medicine:
            continue
        result.append({
            "id": share.id,
            "medicine_id": medicine.id,
            "medicine_name": medicine.medicine_name,
            "category": medicine.category,
            "expiry_date": medicine.expiry_date,
            "shared_by": share.shared_by,
            "can_edit": share.can_edit,
            "shared_at": share.shared_at,
        })
    return result


@router.delete("/groups/{group_id}/leave")
def leave_group(
    group_id: int,
    session: Session = Depends(get_session),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    group, member = _require_member(group_id, current_user, session)
    if member.role == FamilyRole.OWNER or group.owner_id == current_user.id:
        raise HTTPException(422, "The group owner cannot leave the group")

    shares = session.exec(
        select(SharedMedicine).where(
            SharedMedicine.family_group_id == group_id,
            SharedMedicine.shared_by == current_user.id,
        )
    ).all()
    for share in shares:
        session.delete(share)
    session.delete(member)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to leave family group")
    return {"status": "left", "family_group_id": group_id}
