"""Pricing configuration types for video generation models

Stored on a model's default_params under the reserved "pricing" key, using the
camelCase keys the admin tooling writes. The union is closed: the "model" field
selects exactly one of the four strategies.
"""
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

PRICING_MODELS = ("per-second", "base-plus-per-second", "flat-rate", "resolution-dependent")


class AudioPricing(BaseModel):
    """Rate that depends on whether the video carries an audio track"""
    model_config = ConfigDict(populate_by_name=True)

    with_audio: float = Field(alias="withAudio", ge=0)
    without_audio: float = Field(alias="withoutAudio", ge=0)


Rate = Union[Annotated[float, Field(ge=0)], AudioPricing]


class ResolutionTier(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_width: int = Field(alias="maxWidth", gt=0)  # e.g. 1280 for 720p
    max_height: int = Field(alias="maxHeight", gt=0)  # e.g. 720
    price: float = Field(ge=0)  # per second or flat, per pricingType

    @property
    def label(self) -> str:
        return f"{self.max_width}x{self.max_height}"


class _PricingBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    currency: Optional[Literal["USD"]] = None
    is_estimated: Optional[bool] = Field(default=None, alias="isEstimated")


class PerSecondPricing(_PricingBase):
    """cost = duration x pricePerSecond"""
    model: Literal["per-second"]
    price_per_second: Rate = Field(alias="pricePerSecond")


class BasePlusPerSecondPricing(_PricingBase):
    """cost = basePrice + max(0, duration - baseDuration) x pricePerExtraSecond"""
    model: Literal["base-plus-per-second"]
    base_price: float = Field(alias="basePrice", ge=0)
    base_duration: float = Field(alias="baseDuration", gt=0)
    price_per_extra_second: Rate = Field(alias="pricePerExtraSecond")


class FlatRatePricing(_PricingBase):
    """Fixed price per generation, whatever the duration"""
    model: Literal["flat-rate"]
    price: float = Field(ge=0)


class ResolutionDependentPricing(_PricingBase):
    """Tiered by resolution; each tier priced per second or flat"""
    model: Literal["resolution-dependent"]
    tiers: List[ResolutionTier] = Field(min_length=1)
    pricing_type: Literal["per-second", "flat-rate"] = Field(alias="pricingType")


PricingConfig = Annotated[
    Union[PerSecondPricing, BasePlusPerSecondPricing, FlatRatePricing, ResolutionDependentPricing],
    Field(discriminator="model"),
]

pricing_config_adapter = TypeAdapter(PricingConfig)


@dataclass
class CostCalculationContext:
    """Measured video metrics the cost is computed from"""
    duration: float  # actual video duration in seconds
    width: Optional[int] = None
    height: Optional[int] = None
    has_audio: bool = False
    additional_params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CostBreakdown:
    base_price: Optional[float] = None
    variable_price: Optional[float] = None
    tier: Optional[str] = None


@dataclass
class CostCalculationResult:
    cost: float
    breakdown: Optional[CostBreakdown] = None
    error: Optional[str] = None
