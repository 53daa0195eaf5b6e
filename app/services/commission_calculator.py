# app/services/commission_calculator.py
# Чистые функции расчета комиссий: никаких обращений к БД.

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

CENT = Decimal("0.01")


def money(value: float | int | Decimal | None) -> float:
    """Округляет денежную сумму до копеек (half-up) в точке вычисления."""
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


@dataclass
class CommissionBreakdown:
    ticket_price: float
    platform_fee: float
    organizer_revenue: float
    primary_agency_commission: float
    affiliate_base: float
    affiliate_commission: float
    tier_2_affiliate_commission: Optional[float]
    organizer_net: float

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _get(config: Any, name: str, default: Any = None) -> Any:
    # Конфигурация может быть ORM-моделью, pydantic-схемой или словарем
    if isinstance(config, dict):
        value = config.get(name, default)
    else:
        value = getattr(config, name, default)
    return default if value is None else value


def calculate_platform_fee(price: float, config: Any) -> float:
    fee_type = _get(config, "platform_fee_type", "percentage")
    percentage = float(_get(config, "platform_fee_percentage", 0))
    fixed = float(_get(config, "platform_fee_fixed", 0))

    fee = 0.0
    if fee_type == "percentage":
        fee = price * percentage / 100
    elif fee_type == "fixed":
        fee = fixed
    elif fee_type == "hybrid":
        fee = price * percentage / 100 + fixed

    cap = _get(config, "platform_fee_cap")
    if cap is not None:
        fee = min(fee, float(cap))
    return max(0.0, money(fee))


def percentage_or_fixed(base: float, commission_type: str, rate: float | None, fixed: float | None) -> float:
    if commission_type == "percentage":
        return max(0.0, money(base * float(rate or 0) / 100))
    return max(0.0, money(fixed or 0))


def affiliate_commission_base(
    price: float, organizer_revenue: float, agency_commission: float, config: Any
) -> float:
    base = _get(config, "affiliate_commission_base", "organizer_revenue")
    if base == "ticket_price":
        return price
    if base == "agency_revenue":
        return agency_commission
    return organizer_revenue


def calculate_commission(
    ticket_price: float,
    config: Any,
    has_agency: bool = True,
    has_affiliate: bool = True,
) -> CommissionBreakdown:
    """
    Раскладывает цену билета по цепочке: платформа -> агентство -> партнер -> субпартнер.

    Каждая сумма округляется сразу после вычисления, поэтому повторные чтения
    не накапливают погрешность float. Отрицательный organizer_net здесь не исправляется:
    корректность ставок проверяется при сохранении конфигурации.
    """
    price = money(ticket_price)
    platform_fee = calculate_platform_fee(price, config)
    organizer_revenue = money(price - platform_fee)

    primary_agency_commission = 0.0
    if has_agency:
        primary_agency_commission = percentage_or_fixed(
            organizer_revenue,
            _get(config, "primary_agency_commission_type", "percentage"),
            _get(config, "primary_agency_commission_rate", 0),
            _get(config, "primary_agency_commission_fixed", 0),
        )

    affiliate_base = money(
        affiliate_commission_base(price, organizer_revenue, primary_agency_commission, config)
    )
    affiliate_commission = 0.0
    if has_affiliate and _get(config, "affiliate_commission_enabled", True):
        affiliate_commission = percentage_or_fixed(
            affiliate_base,
            _get(config, "affiliate_commission_type", "percentage"),
            _get(config, "affiliate_commission_rate", 0),
            _get(config, "affiliate_commission_fixed", 0),
        )

    # Комиссия второго уровня - процент от комиссии партнера, а не от базы
    tier_2 = None
    tier_2_rate = _get(config, "tier_2_commission_rate")
    if _get(config, "enable_multi_tier", False) and tier_2_rate is not None:
        tier_2 = money(affiliate_commission * float(tier_2_rate) / 100)

    organizer_net = money(
        organizer_revenue - primary_agency_commission - affiliate_commission - (tier_2 or 0)
    )

    return CommissionBreakdown(
        ticket_price=price,
        platform_fee=platform_fee,
        organizer_revenue=organizer_revenue,
        primary_agency_commission=primary_agency_commission,
        affiliate_base=affiliate_base,
        affiliate_commission=affiliate_commission,
        tier_2_affiliate_commission=tier_2,
        organizer_net=organizer_net,
    )


def build_calculation_breakdown(breakdown: CommissionBreakdown, config: Any) -> Dict[str, Any]:
    """Человекочитаемая раскладка расчета для аудита и поддержки."""
    platform_type = _get(config, "platform_fee_type", "percentage")
    agency_type = _get(config, "primary_agency_commission_type", "percentage")
    affiliate_type = _get(config, "affiliate_commission_type", "percentage")
    base_name = _get(config, "affiliate_commission_base", "organizer_revenue")

    steps: List[str] = [f"Ticket price: {breakdown.ticket_price:.2f}"]
    if platform_type == "fixed":
        steps.append(f"Platform fee (fixed): {breakdown.platform_fee:.2f}")
    else:
        steps.append(
            f"Platform fee ({platform_type}, {_get(config, 'platform_fee_percentage', 0)}%"
            f" + {_get(config, 'platform_fee_fixed', 0)}): {breakdown.platform_fee:.2f}"
        )
    steps.append(f"Organizer revenue: {breakdown.organizer_revenue:.2f}")
    steps.append(f"Primary agency commission ({agency_type}): {breakdown.primary_agency_commission:.2f}")
    steps.append(
        f"Affiliate commission ({affiliate_type} of {base_name} {breakdown.affiliate_base:.2f}):"
        f" {breakdown.affiliate_commission:.2f}"
    )
    if breakdown.tier_2_affiliate_commission is not None:
        steps.append(
            f"Tier-2 commission ({_get(config, 'tier_2_commission_rate')}% of affiliate commission):"
            f" {breakdown.tier_2_affiliate_commission:.2f}"
        )
    steps.append(f"Organizer net: {breakdown.organizer_net:.2f}")

    return {
        "ticket_price": breakdown.ticket_price,
        "platform_fee_calc": {
            "type": platform_type,
            "percentage": _get(config, "platform_fee_percentage", 0),
            "fixed": _get(config, "platform_fee_fixed", 0),
            "cap": _get(config, "platform_fee_cap"),
            "amount": breakdown.platform_fee,
        },
        "organizer_revenue": breakdown.organizer_revenue,
        "primary_agency_calc": {
            "type": agency_type,
            "base": breakdown.organizer_revenue,
            "rate": _get(config, "primary_agency_commission_rate", 0),
            "amount": breakdown.primary_agency_commission,
        },
        "affiliate_calc": {
            "type": affiliate_type,
            "base_type": base_name,
            "base": breakdown.affiliate_base,
            "rate": _get(config, "affiliate_commission_rate", 0),
            "amount": breakdown.affiliate_commission,
        },
        "tier_2_calc": {
            "rate": _get(config, "tier_2_commission_rate"),
            "amount": breakdown.tier_2_affiliate_commission,
        },
        "organizer_net": breakdown.organizer_net,
        "steps": steps,
    }


def validate_commission_rates(config: Any) -> List[str]:
    """
    Проверяет ставки при сохранении конфигурации.

    Процентные доли агентства, партнера и второго уровня, приведенные к выручке
    организатора, в сумме не должны превышать 100%. Фиксированные суммы зависят от цены
    билета и проверяются через предпросмотр.
    """
    errors: List[str] = []

    for name in (
        "platform_fee_percentage", "primary_agency_commission_rate", "affiliate_commission_rate",
        "tier_2_commission_rate", "tier_3_commission_rate",
    ):
        value = _get(config, name)
        if value is not None and not 0 <= float(value) <= 100:
            errors.append(f"{name} must be between 0 and 100")
    for name in ("platform_fee_fixed", "platform_fee_cap", "primary_agency_commission_fixed",
                 "affiliate_commission_fixed", "minimum_payout_amount"):
        value = _get(config, name)
        if value is not None and float(value) < 0:
            errors.append(f"{name} must not be negative")
    if errors:
        return errors

    agency_share = 0.0
    if _get(config, "primary_agency_commission_type", "percentage") == "percentage":
        agency_share = float(_get(config, "primary_agency_commission_rate", 0))

    affiliate_share = 0.0
    if _get(config, "affiliate_commission_enabled", True) and \
            _get(config, "affiliate_commission_type", "percentage") == "percentage":
        rate = float(_get(config, "affiliate_commission_rate", 0))
        base = _get(config, "affiliate_commission_base", "organizer_revenue")
        if base == "agency_revenue":
            affiliate_share = agency_share * rate / 100
        elif base == "ticket_price":
            # Процент от цены билета больше, чем тот же процент от выручки организатора
            platform_pct = 0.0
            if _get(config, "platform_fee_type", "percentage") in ("percentage", "hybrid"):
                platform_pct = float(_get(config, "platform_fee_percentage", 0))
            if platform_pct >= 100:
                affiliate_share = float("inf") if rate > 0 else 0.0
            else:
                affiliate_share = rate * 100 / (100 - platform_pct)
        else:
            affiliate_share = rate

    tier_multiplier = 1.0
    tier_2_rate = _get(config, "tier_2_commission_rate")
    if _get(config, "enable_multi_tier", False) and tier_2_rate is not None:
        tier_multiplier += float(tier_2_rate) / 100

    total_share = agency_share + affiliate_share * tier_multiplier
    if total_share > 100 + 1e-9:
        errors.append(
            f"Combined agency, affiliate and tier-2 commissions claim {total_share:.2f}% "
            f"of organizer revenue; the total must not exceed 100%"
        )
    return errors
