"""Provider contract shared by all video generation adapters"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable

# Keys in additional_params that steer request building and must never reach a vendor
IMAGE_URL_FIELD_KEY = "imageUrlField"
IMAGE_URL_IS_ARRAY_KEY = "imageUrlIsArray"
PRICING_PARAM_KEY = "pricing"
RESERVED_PARAM_KEYS = frozenset({IMAGE_URL_FIELD_KEY, IMAGE_URL_IS_ARRAY_KEY, PRICING_PARAM_KEY})


@dataclass
class GenerationRequest:
    """What the worker asks a provider to generate"""

    prompt: str
    source_image_url: Optional[str] = None
    duration: Optional[Any] = None  # vendors disagree on int vs "5"
    aspect_ratio: Optional[str] = None
    seed: Optional[int] = None
    additional_params: Dict[str, Any] = field(default_factory=dict)

    def vendor_params(self) -> Dict[str, Any]:
        """additional_params without the reserved steering keys"""
        return {k: v for k, v in (self.additional_params or {}).items() if k not in RESERVED_PARAM_KEYS}


@dataclass
class GenerationResult:
    """Adapter output; vendor-reported metrics are provisional"""

    success: bool
    generation_time: float = 0.0
    video_url: Optional[str] = None
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    api_request_id: Optional[str] = None
    raw_response: Any = None
    error: Optional[str] = None


@runtime_checkable
class VideoProvider(Protocol):
    """A video generation vendor

    Expected vendor failures (error responses, timeouts, missing output) are
    returned as ``GenerationResult(success=False, error=...)``, never raised.
    """

    name: str

    async def generate_video(self, model_endpoint: str, request: GenerationRequest) -> GenerationResult:
        ...


class Stopwatch:
    """Elapsed wall-clock seconds since construction"""

    def __init__(self) -> None:
        self._started = time.monotonic()

    @property
    def elapsed(self) -> float:
        return round(time.monotonic() - self._started, 3)


def dig(payload: Any, path: str) -> Any:
    """Follow a dotted key path through nested dicts, None if any step is missing"""
    current = payload
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def as_int(value: Any) -> Optional[int]:
    number = as_float(value)
    return int(number) if number is not None else None
