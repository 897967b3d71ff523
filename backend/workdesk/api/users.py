from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from workdesk.api.deps import get_admin_user, get_doer
from workdesk.auth import hash_password
from workdesk.database import get_session
from workdesk.models.user import User

router = APIRouter(prefix="/users", tags=["users"])

ROLES = {"admin", "supervisor", "doer", "client"}


class CreateUserRequest(BaseModel):
    username: str
    password: str
    full_name: str = ""
    role: str | None = None


class AvailabilityRequest(BaseModel):
    is_available: bool


class UserResponse(BaseModel):
    id: int
    username: str
    full_name: str
    role: str
    is_available: bool
    created_at: datetime


@router.get("", response_model=list[UserResponse])
async def list_users(
    role: str | None = None,
    session: Session = Depends(get_session),
    _admin: User = Depends(get_admin_user),
):
    query = select(User)
    if role:
        query = query.where(User.role == role)
    return session.exec(query).all()


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    body: CreateUserRequest,
    session: Session = Depends(get_session),
    _admin: User = Depends(get_admin_user),
):
    if body.role and body.role not in ROLES:
        raise HTTPException(status_code=400, detail="Unknown role")
    existing = session.exec(
        select(User).where(User.username == body.username)
    ).first()
    if existing:
        raise HTTPException(status_code=409, detail="Username already exists")

    user = User(
        username=body.username,
        password_hash=hash_password(body.password),
        full_name=body.full_name,
        **({"role": body.role} if body.role else {}),
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@router.put("/me/availability", response_model=UserResponse)
async def set_availability(
    body: AvailabilityRequest,
    session: Session = Depends(get_session),
    doer: User = Depends(get_doer),
):
    doer.is_available = body.is_available
    session.add(doer)
    session.commit()
    session.refresh(doer)
    return doer


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    session: Session = Depends(get_session),
    _admin: User = Depends(get_admin_user),
):
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    session.delete(user)
    session.commit()
    return {"detail": "User deleted"}
