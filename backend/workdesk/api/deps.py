from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session, col, select

from workdesk.auth import decode_token
from workdesk.database import get_session
from workdesk.errors import NotAuthenticated
from workdesk.models.common import PricingGuide
from workdesk.models.user import User
from workdesk.services.lifecycle import Actor
from workdesk.services.pricing import PricingConfig

security = HTTPBearer()


def user_for_token(session: Session, token: str) -> User:
    try:
        claims = decode_token(token)
    except ValueError:
        raise NotAuthenticated("Invalid token")
    user = session.get(User, claims.user_id)
    if not user:
        raise NotAuthenticated("User not found")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: Session = Depends(get_session),
) -> User:
    return user_for_token(session, credentials.credentials)


async def get_actor(user: User = Depends(get_current_user)) -> Actor:
    return Actor.for_user(user)


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin required")
    return user


async def get_doer(user: User = Depends(get_current_user)) -> User:
    if user.role != "doer":
        raise HTTPException(status_code=403, detail="Doer account required")
    return user


async def get_supervisor(user: User = Depends(get_current_user)) -> User:
    if user.role != "supervisor":
        raise HTTPException(status_code=403, detail="Supervisor account required")
    return user


def active_pricing_guide(session: Session) -> PricingGuide | None:
    return session.exec(
        select(PricingGuide)
        .where(PricingGuide.is_active == True)  # noqa: E712
        .order_by(col(PricingGuide.id).desc())
    ).first()


def get_pricing(session: Session = Depends(get_session)) -> PricingConfig:
    guide = active_pricing_guide(session)
    if guide is None:
        return PricingConfig.from_settings()
    return PricingConfig.model_validate(guide, from_attributes=True)
