from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlmodel import Session

from workdesk.api.deps import (
    active_pricing_guide,
    get_admin_user,
    get_current_user,
    get_pricing,
)
from workdesk.database import get_session
from workdesk.errors import ValidationError
from workdesk.models.common import PricingGuide
from workdesk.models.user import User
from workdesk.services.pricing import PricingConfig

router = APIRouter(prefix="/pricing", tags=["pricing"])


class PricingResponse(BaseModel):
    base_price_per_word: float
    base_price_per_page: float
    base_price_fixed: float
    urgency_24h_multiplier: float
    urgency_48h_multiplier: float
    urgency_72h_multiplier: float
    supervisor_percentage: float
    platform_percentage: float


class UpdatePricingRequest(BaseModel):
    base_price_per_word: float | None = None
    base_price_per_page: float | None = None
    base_price_fixed: float | None = None
    urgency_24h_multiplier: float | None = None
    urgency_48h_multiplier: float | None = None
    urgency_72h_multiplier: float | None = None
    supervisor_percentage: float | None = None
    platform_percentage: float | None = None


def seed_pricing_guide(session: Session) -> PricingGuide:
    """Create the active pricing guide from settings if there is none."""
    guide = active_pricing_guide(session)
    if guide:
        return guide
    defaults = PricingConfig.from_settings()
    guide = PricingGuide(**{k: float(v) for k, v in defaults.model_dump().items()})
    session.add(guide)
    session.commit()
    session.refresh(guide)
    return guide


@router.get("", response_model=PricingResponse)
async def get_pricing_guide(
    pricing: PricingConfig = Depends(get_pricing),
    _user: User = Depends(get_current_user),
):
    return PricingResponse(**{k: float(v) for k, v in pricing.model_dump().items()})


@router.put("", response_model=PricingResponse)
async def update_pricing_guide(
    body: UpdatePricingRequest,
    session: Session = Depends(get_session),
    _admin: User = Depends(get_admin_user),
):
    guide = seed_pricing_guide(session)
    merged = {
        **PricingConfig.model_validate(guide, from_attributes=True).model_dump(),
        **body.model_dump(exclude_unset=True, exclude_none=True),
    }
    try:
        config = PricingConfig(**merged)
    except PydanticValidationError as e:
        raise ValidationError(e.errors()[0]["msg"])

    for key, value in config.model_dump().items():
        setattr(guide, key, float(value))
    guide.updated_at = datetime.utcnow()
    session.add(guide)
    session.commit()
    session.refresh(guide)
    return PricingResponse(**{k: float(v) for k, v in config.model_dump().items()})
