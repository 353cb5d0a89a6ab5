"""
KitVerify API — Main Application

POST /v1/verify         — Verify one product code (optionally with visual data)
POST /v1/verify/batch   — Verify several codes in one call
POST /v1/verify/attributes — Brand, kit type and colour against the record
GET  /v1/codes/lookup   — Reference record for an exact code
GET  /v1/patterns       — Code format library (optionally per brand)
POST /v1/ocr/extract    — Product codes and hints from OCR text
GET  /health            — Health check
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from kitverify import __version__
from kitverify.config import settings
from kitverify.errors import InvalidCodeError
from kitverify.logging import setup_logging, get_logger
from kitverify.models import VerificationResult, VisualObservation
from kitverify.ocr import detect_sponsor, detect_technology, extract_codes
from kitverify.patterns import get_patterns
from kitverify.scorer import VERDICT_LABELS, score_breakdown
from kitverify.verifier import Verifier, get_verifier, validate_code
from kitverify import verifier as verifier_module
from kitverify.schemas.verify import (
    VerifyRequest,
    VerifyResponse,
    VerifyBatchRequest,
    VerifyBatchResponse,
    AttributeCheckRequest,
    AttributeCheckResponse,
    ProductResponse,
    PatternsResponse,
    OCRExtractRequest,
    OCRExtractResponse,
    HealthResponse,
)

logger = get_logger("api")


# ============================================================
# STARTUP / SHUTDOWN
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup, flush pending side effects on shutdown."""
    setup_logging()
    logger.info("KitVerify API starting",
                extra={"store": settings.STORE})
    yield
    if verifier_module._default_verifier is not None:
        await verifier_module._default_verifier.side_effects.drain()
    logger.info("KitVerify API shutting down")


app = FastAPI(
    title="KitVerify API",
    description="Multi-signal authentication of football shirt product codes",
    version=f"{__version__} (engine {settings.ENGINE_VERSION})",
    lifespan=lifespan,
)

# CORS: set KITVERIFY_CORS_ORIGINS in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=False,
)


# ============================================================
# ERROR HANDLERS
# ============================================================

@app.exception_handler(InvalidCodeError)
async def invalid_code_handler(request: Request, exc: InvalidCodeError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions — return structured error, don't leak internals."""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra={"error": str(exc), "path": request.url.path, "method": request.method},
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error. The verification could not be completed.",
        },
    )


def _result_response(result: VerificationResult) -> dict:
    data = result.to_dict()
    breakdown = score_breakdown(result.signals)
    # Reported score may differ from the raw mean (blacklist override, unmatched cap)
    breakdown["raw_score"] = breakdown["final_score"]
    breakdown["final_score"] = result.confidence_score
    breakdown["blacklist_override"] = result.blacklist_match is not None
    data["verdict_label"] = VERDICT_LABELS[result.verdict]
    data["score_breakdown"] = breakdown
    data["engine_version"] = settings.ENGINE_VERSION
    return data


# ============================================================
# ROUTES
# ============================================================

@app.post("/v1/verify", response_model=VerifyResponse)
async def verify(
    request: VerifyRequest,
    verifier: Verifier = Depends(get_verifier),
):
    """Verify a product code, with an optional visual cross-check."""
    observation = None
    if request.visual is not None:
        observation = VisualObservation(
            dominant_color=request.visual.dominant_color,
            sponsor_hint=request.visual.sponsor_hint,
            technology_hint=request.visual.technology_hint,
            color_confidence=request.visual.color_confidence,
            detected_texts=tuple(request.visual.detected_texts),
        )
    result = await verifier.verify_with_visual_data(
        request.code, observation, brand_filter=request.brand,
    )
    return _result_response(result)


@app.post("/v1/verify/batch", response_model=VerifyBatchResponse)
async def verify_batch(
    request: VerifyBatchRequest,
    verifier: Verifier = Depends(get_verifier),
):
    """Verify several codes concurrently. Invalid codes get an error entry."""
    batch = await verifier.verify_batch(request.codes, brand_filter=request.brand)
    return {
        "results": [
            {
                "code": entry["code"],
                "result": _result_response(entry["result"]) if entry["result"] else None,
                "error": entry["error"],
            }
            for entry in batch["results"]
        ],
        "stats": batch["stats"],
    }


@app.post("/v1/verify/attributes", response_model=AttributeCheckResponse)
async def verify_attributes(
    request: AttributeCheckRequest,
    verifier: Verifier = Depends(get_verifier),
):
    """Check that the shirt's brand, kit type and colour fit the record for its code."""
    validation = await verifier.cross_validate_attributes(
        request.code,
        brand=request.brand,
        kit_type=request.kit_type,
        primary_color=request.primary_color,
    )
    return validation.to_dict()


@app.get("/v1/codes/lookup", response_model=ProductResponse)
async def lookup_code(
    code: str = Query(..., min_length=1, max_length=64),
    brand: Optional[str] = Query(None, max_length=20),
    verifier: Verifier = Depends(get_verifier),
):
    """Return the reference record for an exact product code."""
    normalized = validate_code(code)
    record = await verifier.store.lookup_product_code(normalized, brand)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Code {normalized} not found")
    return record.to_dict()


@app.get("/v1/patterns", response_model=PatternsResponse)
async def list_patterns(brand: Optional[str] = Query(None, max_length=20)):
    """List code formats, optionally for one brand."""
    patterns = get_patterns(brand)
    return {"patterns": patterns, "total": len(patterns)}


@app.post("/v1/ocr/extract", response_model=OCRExtractResponse)
async def ocr_extract(request: OCRExtractRequest):
    """Pull candidate product codes and sponsor/technology hints from OCR text."""
    return {
        "codes": [c.to_dict() for c in extract_codes(request.text)],
        "sponsor_hint": detect_sponsor([request.text]),
        "technology_hint": detect_technology([request.text]),
    }


@app.get("/health", response_model=HealthResponse)
async def health(verifier: Verifier = Depends(get_verifier)):
    return HealthResponse(
        status="ok",
        version=__version__,
        engine_version=settings.ENGINE_VERSION,
        store=verifier.store.kind,
        side_effect_errors=verifier.side_effects.error_count,
    )


# --- Security + Version Headers Middleware ---
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security and version headers to all responses."""
    response = await call_next(request)
    response.headers["X-KitVerify-Version"] = __version__
    response.headers["X-Engine-Version"] = settings.ENGINE_VERSION
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


# --- Request Logging Middleware ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with method, path, status, duration."""
    path = request.url.path
    if path == "/health":
        return await call_next(request)

    start = time.time()
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000, 1)

    logger.info(
        f"{request.method} {path} -> {response.status_code} ({duration_ms}ms)",
        extra={
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.main:app", host=settings.HOST, port=settings.PORT)
