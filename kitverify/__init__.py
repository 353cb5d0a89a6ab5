"""
KitVerify — Football Shirt Product Code Authentication Engine

Scores a manufacturer product code from independent signals (database
match, blacklist, format, brand and era consistency) into a 0-100
confidence score and a verdict.

Public API:
  - Verifier:                 Signal pipeline bound to a reference store
  - verify_product_code:      Verify with the default, settings-built verifier
  - verify_with_visual_data:  Same, plus the visual cross-check pass
  - detect_brand:             Brand from a code's format
  - calculate_confidence_score / determine_verdict: Scoring primitives
  - VisualCrossChecker / analyze_image: Photo-based cross-validation
  - cross_validate_attributes: Claimed brand, kit type and colour vs the record
  - extract_codes:            Product codes from OCR text
  - ReferenceStore / get_store: Reference data backends

Usage:
    from kitverify import Verifier, InMemoryReferenceStore
    verifier = Verifier(InMemoryReferenceStore())
    result = await verifier.verify_product_code("CZ3984-100")
"""

__version__ = "1.0.0"

from kitverify.errors import KitVerifyError, InvalidCodeError, VerificationError
from kitverify.models import (
    Signal,
    ProductCodeRecord,
    BlacklistRecord,
    EraWindow,
    VisualObservation,
    VerificationResult,
)
from kitverify.patterns import detect_brand, get_patterns, is_valid_format
from kitverify.scorer import (
    calculate_confidence_score,
    determine_verdict,
    generate_recommendation,
    score_breakdown,
)
from kitverify.reference import (
    ReferenceStore,
    InMemoryReferenceStore,
    SQLiteReferenceStore,
    EraReference,
    get_store,
)
from kitverify.side_effects import SideEffects
from kitverify.visual import (
    VisualCrossChecker,
    VisualAttribute,
    AttributeValidation,
    analyze_image,
    cross_validate_attributes,
)
from kitverify.ocr import extract_codes, detect_sponsor, detect_technology
from kitverify.verifier import (
    Verifier,
    verify_product_code,
    verify_with_visual_data,
)

__all__ = [
    "KitVerifyError",
    "InvalidCodeError",
    "VerificationError",
    "Signal",
    "ProductCodeRecord",
    "BlacklistRecord",
    "EraWindow",
    "VisualObservation",
    "VerificationResult",
    "detect_brand",
    "get_patterns",
    "is_valid_format",
    "calculate_confidence_score",
    "determine_verdict",
    "generate_recommendation",
    "score_breakdown",
    "ReferenceStore",
    "InMemoryReferenceStore",
    "SQLiteReferenceStore",
    "EraReference",
    "get_store",
    "SideEffects",
    "VisualCrossChecker",
    "VisualAttribute",
    "AttributeValidation",
    "analyze_image",
    "cross_validate_attributes",
    "extract_codes",
    "detect_sponsor",
    "detect_technology",
    "Verifier",
    "verify_product_code",
    "verify_with_visual_data",
]
