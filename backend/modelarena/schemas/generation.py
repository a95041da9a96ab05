"""Pydantic schemas for generation jobs"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class GenerationJobData(BaseModel):
    """Queue payload: one per (video, model) generation request"""
    video_id: str
    comparison_id: str
    model_id: str
    prompt: str
    source_image_url: Optional[str] = None
    model_endpoint: str
    provider_name: str
    duration: Optional[float] = None
    aspect_ratio: Optional[str] = None
    seed: Optional[int] = None
    additional_params: Optional[Dict[str, Any]] = None

    model_config = {"protected_namespaces": ()}


class GenerationOptions(BaseModel):
    """Per-comparison generation overrides supplied by the caller"""
    duration: Optional[float] = None
    aspect_ratio: Optional[str] = None
    seed: Optional[int] = None
    additional_params: Dict[str, Any] = Field(default_factory=dict)


class RetryResponse(BaseModel):
    success: bool
    message: str
    video_id: str
    task_id: str


class ManualUploadResponse(BaseModel):
    success: bool
    message: str
    video_id: str
    status: str
    url: Optional[str] = None
    thumbnail_url: Optional[str] = None
