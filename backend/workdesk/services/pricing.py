"""Quote suggestions and the split of a quote between doer, supervisor and platform.

All arithmetic is done in ``Decimal`` and every amount is rounded up to a
whole currency unit. There is no fractional-unit handling.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_CEILING, Decimal

from pydantic import BaseModel, field_validator, model_validator

from workdesk.config import settings
from workdesk.errors import ValidationError

HUNDRED = Decimal(100)


class PricingConfig(BaseModel):
    base_price_per_word: Decimal = Decimal("0.5")
    base_price_per_page: Decimal = Decimal("150")
    base_price_fixed: Decimal = Decimal("500")
    urgency_24h_multiplier: Decimal = Decimal("1.5")
    urgency_48h_multiplier: Decimal = Decimal("1.3")
    urgency_72h_multiplier: Decimal = Decimal("1.15")
    supervisor_percentage: Decimal = Decimal("15")
    platform_percentage: Decimal = Decimal("20")

    @field_validator("*", mode="before")
    @classmethod
    def _float_via_str(cls, value):
        # 0.1 should mean Decimal("0.1"), not its binary approximation
        if isinstance(value, float):
            return str(value)
        return value

    @field_validator("*")
    @classmethod
    def _non_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("pricing values cannot be negative")
        return value

    @model_validator(mode="after")
    def _shares_fit(self) -> "PricingConfig":
        if self.supervisor_percentage + self.platform_percentage > HUNDRED:
            raise ValueError("supervisor and platform percentages exceed 100")
        return self

    @classmethod
    def from_settings(cls) -> "PricingConfig":
        return cls(
            base_price_per_word=settings.default_price_per_word,
            base_price_per_page=settings.default_price_per_page,
            base_price_fixed=settings.default_price_fixed,
            urgency_24h_multiplier=settings.default_urgency_24h_multiplier,
            urgency_48h_multiplier=settings.default_urgency_48h_multiplier,
            urgency_72h_multiplier=settings.default_urgency_72h_multiplier,
            supervisor_percentage=settings.default_supervisor_percentage,
            platform_percentage=settings.default_platform_percentage,
        )


@dataclass(frozen=True)
class Quote:
    suggested_quote: int
    doer_payout: int
    supervisor_commission: int
    platform_fee: int


def _ceil(amount: Decimal) -> int:
    return int(amount.to_integral_value(rounding=ROUND_CEILING))


def base_price(
    word_count: int | None, page_count: int | None, pricing: PricingConfig
) -> Decimal:
    for name, count in (("word", word_count), ("page", page_count)):
        if count is not None and count < 0:
            raise ValidationError(f"The {name} count cannot be negative.")
    if word_count:
        return word_count * pricing.base_price_per_word
    if page_count:
        return page_count * pricing.base_price_per_page
    return pricing.base_price_fixed


def hours_until(deadline: datetime, now: datetime | None = None) -> float:
    """Hours from ``now`` to ``deadline``, never below zero.

    Naive datetimes are taken to be UTC.
    """
    now = now or datetime.now(UTC)
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return max(0.0, (deadline - now).total_seconds() / 3600)


def urgency_multiplier(
    deadline: datetime | None, pricing: PricingConfig, now: datetime | None = None
) -> Decimal:
    if deadline is None:
        return Decimal(1)
    hours = hours_until(deadline, now)
    if hours <= 24:
        return pricing.urgency_24h_multiplier
    if hours <= 48:
        return pricing.urgency_48h_multiplier
    if hours <= 72:
        return pricing.urgency_72h_multiplier
    return Decimal(1)


def split_quote(user_quote: int, pricing: PricingConfig) -> Quote:
    """Divide a client quote into doer payout, commission and platform fee."""
    quote = Decimal(user_quote)
    deductions = (pricing.supervisor_percentage + pricing.platform_percentage) / HUNDRED
    return Quote(
        suggested_quote=user_quote,
        doer_payout=_ceil(quote * (1 - deductions)),
        supervisor_commission=_ceil(quote * pricing.supervisor_percentage / HUNDRED),
        platform_fee=_ceil(quote * pricing.platform_percentage / HUNDRED),
    )


def calculate_quote(
    word_count: int | None,
    page_count: int | None,
    deadline: datetime | None,
    pricing: PricingConfig | None = None,
    now: datetime | None = None,
) -> Quote:
    """Suggest a client quote from project size and deadline urgency.

    Words take priority over pages; with neither, the fixed floor price
    applies. The tightest urgency bracket the deadline falls in (24h, 48h,
    72h) scales the base price, and an overdue deadline counts as the 24h
    bracket.
    """
    pricing = pricing or PricingConfig()
    price = base_price(word_count, page_count, pricing)
    suggested = _ceil(price * urgency_multiplier(deadline, pricing, now))
    return split_quote(suggested, pricing)


def validate_quote(user_quote: int, doer_payout: int) -> None:
    if user_quote < settings.min_quote:
        raise ValidationError(f"Minimum quote is {settings.min_quote}.")
    if user_quote > settings.max_quote:
        raise ValidationError(f"Maximum quote is {settings.max_quote}.")
    if doer_payout < settings.min_doer_payout:
        raise ValidationError(f"Minimum payout is {settings.min_doer_payout}.")
    if doer_payout > user_quote:
        raise ValidationError("The doer payout cannot exceed the client quote.")
