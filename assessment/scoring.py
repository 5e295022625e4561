"""
Score calculation for a graded submission.
"""

import math
from typing import List

from assessment.config import DEFAULT_THRESHOLDS, Thresholds
from assessment.schema import (
    ExtractedLine,
    Finding,
    FindingType,
    HANDWRITING_FINDING_TYPES,
    QualityGate,
    QualityStatus,
    ScoreBreakdown,
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def _clamp_score(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def calculate_score(
    extracted: List[ExtractedLine],
    findings: List[Finding],
    quality: QualityGate,
    required_line_count: int,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> ScoreBreakdown:
    """
    Compute the score breakdown.

    Ungradable submissions always score zero. Otherwise completeness counts the
    extracted lines, content loses an equal share per content_mismatch, and
    handwriting loses a fixed penalty per handwriting finding. The overall score
    is a weighted average of the unrounded components.
    """
    if quality.status == QualityStatus.UNGRADABLE:
        return ScoreBreakdown(completeness=0, content=0, handwriting=0, overall=0)

    completeness = min(100.0, len(extracted) / required_line_count * 100)

    mismatches = sum(1 for f in findings if f.type == FindingType.CONTENT_MISMATCH)
    per_line_penalty = 100 / required_line_count
    content = max(0.0, 100 - mismatches * per_line_penalty)

    handwriting_issues = sum(1 for f in findings if f.type in HANDWRITING_FINDING_TYPES)
    handwriting = max(0.0, 100.0 - handwriting_issues * thresholds.handwriting_penalty)

    overall = (
        completeness * thresholds.completeness_weight
        + content * thresholds.content_weight
        + handwriting * thresholds.handwriting_weight
    )

    return ScoreBreakdown(
        completeness=_clamp_score(completeness),
        content=_clamp_score(content),
        handwriting=_clamp_score(handwriting),
        overall=_clamp_score(overall),
    )
