"""Cost calculator for video generation

Pure functions: a pricing configuration plus measured video metrics in, a
monetary amount out. Never raises for bad or missing configuration; the error
is returned alongside a zero cost so callers can treat it as "cost unknown".
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from modelarena.services.pricing.types import (
    PRICING_MODELS,
    AudioPricing,
    BasePlusPerSecondPricing,
    CostBreakdown,
    CostCalculationContext,
    CostCalculationResult,
    FlatRatePricing,
    PerSecondPricing,
    ResolutionDependentPricing,
    ResolutionTier,
    pricing_config_adapter,
)

logger = logging.getLogger("pricing")

COST_QUANTUM = Decimal("0.0001")

PricingInput = Union[
    PerSecondPricing, BasePlusPerSecondPricing, FlatRatePricing, ResolutionDependentPricing,
    Mapping[str, Any], None,
]


def round_cost(cost: float) -> float:
    """Round half-up to 4 decimal places without binary floating-point drift"""
    # str() gives the shortest repr, so 0.35000000000000003 rounds to 0.35
    return float(Decimal(str(cost)).quantize(COST_QUANTUM, rounding=ROUND_HALF_UP))


def resolve_audio_pricing(price: Union[float, AudioPricing], has_audio: Optional[bool] = None) -> float:
    """Plain rates pass through; audio-conditional rates default to the no-audio price"""
    if isinstance(price, AudioPricing):
        return price.with_audio if has_audio else price.without_audio
    return float(price)


def parse_pricing_config(raw: Mapping[str, Any]):
    """Validate a stored pricing config into its typed variant

    Raises:
        pydantic.ValidationError: if the config is malformed
    """
    return pricing_config_adapter.validate_python(raw)


def validate_pricing_config(raw: Any) -> bool:
    """Check a pricing config without raising; failures are logged"""
    try:
        parse_pricing_config(raw)
    except ValidationError as e:
        logger.error(f"Pricing config validation failed: {e.errors()}")
        return False
    return True


def find_resolution_tier(tiers, width: int, height: int) -> Optional[ResolutionTier]:
    """Smallest tier whose envelope holds the video, else the largest tier

    Both sides are compared as (longer, shorter) so portrait and landscape
    videos of the same size land in the same tier.
    """
    if not tiers:
        return None

    longer_side = max(width, height)
    shorter_side = min(width, height)

    # Stable sort: equal-area tiers keep their configured order
    ordered = sorted(tiers, key=lambda tier: tier.max_width * tier.max_height)

    for tier in ordered:
        tier_longer = max(tier.max_width, tier.max_height)
        tier_shorter = min(tier.max_width, tier.max_height)
        if longer_side <= tier_longer and shorter_side <= tier_shorter:
            return tier

    # Exceeds every tier: charge at the highest rate
    return ordered[-1]


def _calculate_per_second(config: PerSecondPricing, context: CostCalculationContext) -> CostCalculationResult:
    rate = resolve_audio_pricing(config.price_per_second, context.has_audio)
    cost = context.duration * rate
    return CostCalculationResult(
        cost=round_cost(cost),
        breakdown=CostBreakdown(variable_price=cost),
    )


def _calculate_base_plus_per_second(
    config: BasePlusPerSecondPricing, context: CostCalculationContext
) -> CostCalculationResult:
    extra_seconds = max(0.0, context.duration - config.base_duration)
    extra_rate = resolve_audio_pricing(config.price_per_extra_second, context.has_audio)
    variable_price = extra_seconds * extra_rate
    cost = config.base_price + variable_price
    return CostCalculationResult(
        cost=round_cost(cost),
        breakdown=CostBreakdown(base_price=config.base_price, variable_price=variable_price),
    )


def _calculate_flat_rate(config: FlatRatePricing, context: CostCalculationContext) -> CostCalculationResult:
    return CostCalculationResult(
        cost=round_cost(config.price),
        breakdown=CostBreakdown(base_price=config.price),
    )


def _calculate_resolution_dependent(
    config: ResolutionDependentPricing, context: CostCalculationContext
) -> CostCalculationResult:
    if not context.width or not context.height:
        return CostCalculationResult(
            cost=0.0,
            error="Resolution required for resolution-dependent pricing",
        )

    tier = find_resolution_tier(config.tiers, context.width, context.height)
    if tier is None:
        return CostCalculationResult(cost=0.0, error="No matching resolution tier found")

    if config.pricing_type == "per-second":
        cost = tier.price * context.duration
        breakdown = CostBreakdown(tier=tier.label, variable_price=cost)
    else:
        cost = tier.price
        breakdown = CostBreakdown(tier=tier.label, base_price=tier.price)

    return CostCalculationResult(cost=round_cost(cost), breakdown=breakdown)


_STRATEGIES = {
    "per-second": _calculate_per_second,
    "base-plus-per-second": _calculate_base_plus_per_second,
    "flat-rate": _calculate_flat_rate,
    "resolution-dependent": _calculate_resolution_dependent,
}


def calculate_cost(
    config: PricingInput,
    context: CostCalculationContext,
    fallback_cost_per_second: Optional[float] = None,
) -> CostCalculationResult:
    """Calculate cost from a pricing config and actual video metrics

    Args:
        config: Typed pricing config, raw stored dict, or None
        context: Measured duration/resolution (never the requested values)
        fallback_cost_per_second: Legacy flat rate used when there is no config

    Returns:
        CostCalculationResult; `error` is set whenever the cost is not trustworthy
    """
    if not config and not fallback_cost_per_second:
        return CostCalculationResult(cost=0.0, error="No pricing configuration available")

    if not config:
        variable_price = context.duration * fallback_cost_per_second
        return CostCalculationResult(
            cost=round_cost(variable_price),
            breakdown=CostBreakdown(variable_price=variable_price),
        )

    if isinstance(config, Mapping):
        if config.get("model") not in PRICING_MODELS:
            return CostCalculationResult(cost=0.0, error="Unknown pricing model")
        try:
            config = parse_pricing_config(config)
        except ValidationError as e:
            logger.warning(f"Invalid pricing config: {e}")
            return CostCalculationResult(cost=0.0, error=f"Invalid pricing configuration: {e.error_count()} error(s)")

    strategy = _STRATEGIES.get(getattr(config, "model", None))
    if strategy is None:
        return CostCalculationResult(cost=0.0, error="Unknown pricing model")

    try:
        return strategy(config, context)
    except Exception as e:
        logger.error(f"Cost calculation error: {e}", exc_info=True)
        return CostCalculationResult(cost=0.0, error=str(e) or "Calculation failed")
