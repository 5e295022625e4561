"""
Quality gate: decides whether a submission is gradable.

Rules are evaluated in a fixed order and the first terminal rule wins.
"""

import logging
from typing import List, Optional

from assessment.config import DEFAULT_THRESHOLDS, Thresholds
from assessment.schema import ExtractedLine, Finding, FindingType, QualityGate, QualityStatus
from assessment.scoring import round_half_up

logger = logging.getLogger(__name__)

OCR_RETRY_HINT = "Please try again or check your internet connection."


def compute_quality_gate(
    extracted: List[ExtractedLine],
    findings: List[Finding],
    uncertain_count: int,
    required_line_count: int,
    ocr_failed: bool = False,
    ocr_error_message: Optional[str] = None,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> QualityGate:
    """
    Classify a submission as ok, uncertain or ungradable.

    Args:
        extracted: All extracted lines across pages
        findings: Content and handwriting findings
        uncertain_count: Lines the content verifier could not decide
        required_line_count: Lines the assignment asks for
        ocr_failed: Whether OCR failed on any page
        ocr_error_message: Detail of the last OCR failure
        thresholds: Pipeline thresholds

    Returns:
        QualityGate with reasons in evaluation order
    """
    reasons: List[str] = []

    if ocr_failed:
        detail = ocr_error_message or "Text recognition service unavailable"
        reasons.append(f"OCR failed: {detail}")
        reasons.append(OCR_RETRY_HINT)
        return QualityGate(status=QualityStatus.UNGRADABLE, reasons=reasons, confidence_coverage=0.0)

    if len(extracted) < required_line_count * thresholds.min_line_ratio:
        reasons.append(
            f"Only {len(extracted)} lines detected out of {required_line_count} expected. "
            "The image may be too small or low resolution for this many lines."
        )
        return QualityGate(
            status=QualityStatus.UNGRADABLE,
            reasons=reasons,
            confidence_coverage=min(1.0, len(extracted) / required_line_count),
        )

    verified = sum(1 for line in extracted if line.confidence >= thresholds.line_confidence_uncertain)
    coverage = min(1.0, verified / required_line_count)

    if coverage < thresholds.min_coverage:
        reasons.append(
            f"Only {round_half_up(coverage * 100)}% of lines could be verified with sufficient confidence"
        )
        return QualityGate(status=QualityStatus.UNGRADABLE, reasons=reasons, confidence_coverage=coverage)

    # Pervasive uncertainty (common with cursive) still gets graded
    if uncertain_count > required_line_count * thresholds.max_uncertain_ratio:
        reasons.append(f"{uncertain_count} of {required_line_count} lines have uncertain verification")
        return QualityGate(status=QualityStatus.UNCERTAIN, reasons=reasons, confidence_coverage=coverage)

    if uncertain_count > 0:
        reasons.append(f"{uncertain_count} line(s) could not be verified with high confidence")

    uncertain_findings = sum(1 for f in findings if f.type == FindingType.CONTENT_UNCERTAIN)
    if uncertain_findings > 0:
        reasons.append(f"{uncertain_findings} line(s) marked as uncertain")

    if reasons:
        return QualityGate(status=QualityStatus.UNCERTAIN, reasons=reasons, confidence_coverage=coverage)

    return QualityGate(status=QualityStatus.OK, reasons=[], confidence_coverage=coverage)
