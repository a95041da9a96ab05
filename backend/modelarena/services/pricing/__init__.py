"""Pricing engine: tagged pricing configs evaluated against measured video metrics"""
from modelarena.services.pricing.calculator import (
    calculate_cost,
    find_resolution_tier,
    parse_pricing_config,
    resolve_audio_pricing,
    round_cost,
    validate_pricing_config,
)
from modelarena.services.pricing.formatting import format_cost
from modelarena.services.pricing.types import (
    AudioPricing,
    BasePlusPerSecondPricing,
    CostBreakdown,
    CostCalculationContext,
    CostCalculationResult,
    FlatRatePricing,
    PerSecondPricing,
    PricingConfig,
    ResolutionDependentPricing,
    ResolutionTier,
)

__all__ = [
    "calculate_cost",
    "find_resolution_tier",
    "parse_pricing_config",
    "resolve_audio_pricing",
    "round_cost",
    "validate_pricing_config",
    "format_cost",
    "AudioPricing",
    "BasePlusPerSecondPricing",
    "CostBreakdown",
    "CostCalculationContext",
    "CostCalculationResult",
    "FlatRatePricing",
    "PerSecondPricing",
    "PricingConfig",
    "ResolutionDependentPricing",
    "ResolutionTier",
]
