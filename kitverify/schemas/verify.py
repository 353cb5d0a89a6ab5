"""
API Schemas — Request and Response Models

Pydantic models for the KitVerify API.
"""

from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, Field


# ============================================================
# VERIFY
# ============================================================

class VisualInput(BaseModel):
    """Attributes read off a photo of the shirt."""
    dominant_color: Optional[str] = Field(None, max_length=40)
    sponsor_hint: Optional[str] = Field(None, max_length=80)
    technology_hint: Optional[str] = Field(None, max_length=80)
    color_confidence: float = Field(0.0, ge=0, le=100,
                                    description="Colour detection confidence, 0-100.")
    detected_texts: list[str] = Field(default_factory=list, max_length=200)


class VerifyRequest(BaseModel):
    """POST /v1/verify request body."""
    code: str = Field(..., min_length=1, max_length=64,
                      description="Manufacturer product code, e.g. CZ3984-100.")
    brand: Optional[str] = Field(None, max_length=20,
                                 description="Optional brand filter (Nike, Adidas, Puma, Umbro or all).")
    visual: Optional[VisualInput] = None

    model_config = {"json_schema_extra": {"examples": [
        {"code": "CZ3984-100", "brand": "Nike"},
    ]}}


class VerifyBatchRequest(BaseModel):
    """POST /v1/verify/batch request body."""
    codes: list[str] = Field(..., min_length=1, max_length=100)
    brand: Optional[str] = Field(None, max_length=20)


class SignalResponse(BaseModel):
    id: str
    category: str
    weight: float
    confidence: float
    value: str
    evidence: str
    details: dict[str, Any] = {}


class VerifyResponse(BaseModel):
    """POST /v1/verify response body."""
    code: str
    normalized_code: str
    verdict: str
    verdict_label: str
    confidence_score: int
    signals: list[SignalResponse]
    matched_product: Optional[dict] = None
    blacklist_match: Optional[dict] = None
    recommendation: str
    timestamp: str
    evidence_available: bool
    visual_check: Optional[dict] = None
    score_breakdown: Optional[dict] = None
    engine_version: str


class BatchItem(BaseModel):
    code: Any
    result: Optional[VerifyResponse] = None
    error: Optional[str] = None


class VerifyBatchResponse(BaseModel):
    """POST /v1/verify/batch response body."""
    results: list[BatchItem]
    stats: dict


class AttributeCheckRequest(BaseModel):
    """POST /v1/verify/attributes request body."""
    code: str = Field(..., min_length=1, max_length=64)
    brand: Optional[str] = Field(None, max_length=20)
    kit_type: Optional[str] = Field(None, max_length=30,
                                    description="home, away, third or goalkeeper.")
    primary_color: Optional[str] = Field(None, max_length=40)


class AttributeCheckResponse(BaseModel):
    passed: bool
    confidence: float
    mismatches: list[str]


# ============================================================
# LOOKUP / PATTERNS
# ============================================================

class ProductResponse(BaseModel):
    """GET /v1/codes/lookup response body."""
    code: str
    brand: str
    team: Optional[str] = None
    season: Optional[str] = None
    kit_type: Optional[str] = None
    variant: Optional[str] = None
    verified: bool
    verification_source: str
    primary_color: Optional[str] = None
    sponsor: Optional[str] = None
    technology: Optional[str] = None
    tier: Optional[str] = None
    label_position_era: Optional[str] = None
    expected_suffix_digit: Optional[int] = None
    country_of_manufacture: Optional[str] = None
    lookup_count: int = 0


class PatternResponse(BaseModel):
    id: str
    brand: str
    regex: str
    example: str
    description: str


class PatternsResponse(BaseModel):
    """GET /v1/patterns response body."""
    patterns: list[PatternResponse]
    total: int


# ============================================================
# OCR
# ============================================================

class OCRExtractRequest(BaseModel):
    """POST /v1/ocr/extract request body."""
    text: str = Field(..., min_length=1, max_length=20_000,
                      description="Raw text from an OCR pass over a label or shirt.")


class ExtractedCodeResponse(BaseModel):
    code: str
    brand: str
    pattern_id: str
    confidence: float


class OCRExtractResponse(BaseModel):
    codes: list[ExtractedCodeResponse]
    sponsor_hint: Optional[str] = None
    technology_hint: Optional[str] = None


# ============================================================
# HEALTH
# ============================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    engine_version: str
    store: str
    side_effect_errors: int
