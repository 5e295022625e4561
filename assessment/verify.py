"""
Content verification: compares recognized lines with the expected text.

The verifier is deliberately conservative. A line is only called a mismatch
when OCR confidence is high and the reading is clearly different; everything
in between is reported as uncertain rather than counted against the student.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from assessment.config import DEFAULT_THRESHOLDS, Thresholds
from assessment.normalize import calculate_similarity
from assessment.schema import (
    BoundingBox,
    ConfidenceSummary,
    ExtractedLine,
    Finding,
    FindingType,
    LineConfidenceRecord,
    OcrConfidenceMetrics,
    SecondaryVerdict,
)
from assessment.scoring import round_half_up

logger = logging.getLogger(__name__)

MISSING_LINE_BBOX = BoundingBox(x=0, y=0, w=100, h=30)
SECONDARY_MISMATCH_CONFIDENCE = 0.95


@dataclass
class VerificationResult:
    findings: List[Finding] = field(default_factory=list)
    uncertain_count: int = 0
    line_records: List[LineConfidenceRecord] = field(default_factory=list)


def _new_id() -> str:
    return str(uuid.uuid4())


def _line_bbox(line: ExtractedLine) -> BoundingBox:
    if line.bbox is not None:
        return line.bbox
    return BoundingBox(x=0, y=line.line_index * 30, w=100, h=30)


def verify_content(
    extracted: List[ExtractedLine],
    expected: List[str],
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> VerificationResult:
    """
    Compare each expected line with the extracted line at the same index.

    Args:
        extracted: Extracted lines in global line order
        expected: Expected text per line
        thresholds: Pipeline thresholds

    Returns:
        VerificationResult with findings, the uncertain count and one
        confidence record per line that had OCR output
    """
    result = VerificationResult()
    last_page_index = extracted[-1].page_index if extracted else 0

    for i, expected_text in enumerate(expected):
        line_number = i + 1

        if i >= len(extracted):
            result.findings.append(Finding(
                id=_new_id(),
                page_index=last_page_index,
                type=FindingType.CONTENT_MISMATCH,
                bbox=MISSING_LINE_BBOX,
                line_index=i,
                expected_text=expected_text,
                observed_text="",
                confidence=thresholds.missing_line_confidence,
                message=f"Line {line_number} is missing",
            ))
            continue

        line = extracted[i]

        def uncertain(message: str) -> Finding:
            return Finding(
                id=_new_id(),
                page_index=line.page_index,
                type=FindingType.CONTENT_UNCERTAIN,
                bbox=_line_bbox(line),
                line_index=i,
                expected_text=expected_text,
                observed_text=line.text,
                confidence=line.confidence,
                message=message,
            )

        def record(similarity: float, finding_confidence: float, decision: str) -> None:
            result.line_records.append(LineConfidenceRecord(
                line_index=i,
                ocr_confidence=line.confidence,
                similarity=similarity,
                finding_confidence=finding_confidence,
                decision=decision,
                expected_text=expected_text,
                observed_text=line.text,
            ))

        if line.confidence < thresholds.line_confidence_uncertain:
            result.findings.append(uncertain(
                f"Line {line_number}: Unable to verify - image quality or OCR confidence too low"
            ))
            result.uncertain_count += 1
            record(0.0, 0.0, "uncertain")
            continue

        similarity = calculate_similarity(line.text, expected_text)
        percent = round_half_up(similarity * 100)

        if line.confidence < thresholds.ocr_high_confidence:
            # Moderate OCR confidence is never trusted enough to accuse a mismatch
            result.findings.append(uncertain(
                f"Line {line_number}: Verification uncertain due to moderate OCR confidence"
            ))
            result.uncertain_count += 1
            record(similarity, 0.0, "uncertain")
            continue

        if similarity >= thresholds.match_similarity:
            record(similarity, 0.0, "verified")
            continue

        finding_confidence = line.confidence * (1 - similarity)
        if (
            finding_confidence >= thresholds.finding_confidence
            and similarity < thresholds.mismatch_similarity
        ):
            result.findings.append(Finding(
                id=_new_id(),
                page_index=line.page_index,
                type=FindingType.CONTENT_MISMATCH,
                bbox=_line_bbox(line),
                line_index=i,
                expected_text=expected_text,
                observed_text=line.text,
                confidence=finding_confidence,
                message=f"Line {line_number}: Content does not match expected text ({percent}% similar)",
            ))
            record(similarity, finding_confidence, "mismatch")
        else:
            result.findings.append(uncertain(
                f"Line {line_number}: Content verification uncertain ({percent}% similar)"
            ))
            result.uncertain_count += 1
            record(similarity, finding_confidence, "uncertain")

    logger.info(
        f"Content verification: {len(result.findings)} finding(s), "
        f"{result.uncertain_count} uncertain line(s) out of {len(expected)}"
    )
    return result


def summarize_confidence_metrics(
    records: List[LineConfidenceRecord],
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> OcrConfidenceMetrics:
    """Aggregate per-line confidence records for threshold tuning."""
    confidences = [r.ocr_confidence for r in records]
    similarities = [r.similarity for r in records]

    summary = ConfidenceSummary(
        avg_ocr_confidence=sum(confidences) / len(confidences) if confidences else 0.0,
        min_ocr_confidence=min(confidences) if confidences else 0.0,
        max_ocr_confidence=max(confidences) if confidences else 0.0,
        avg_similarity=sum(similarities) / len(similarities) if similarities else 0.0,
        verified_count=sum(1 for r in records if r.decision == "verified"),
        uncertain_count=sum(1 for r in records if r.decision == "uncertain"),
        mismatch_count=sum(1 for r in records if r.decision == "mismatch"),
    )

    return OcrConfidenceMetrics(
        timestamp=datetime.now(timezone.utc).isoformat(),
        total_lines=len(records),
        line_metrics=list(records),
        summary=summary,
        thresholds_used={
            "line_confidence_uncertain": thresholds.line_confidence_uncertain,
            "ocr_high_confidence": thresholds.ocr_high_confidence,
            "finding_confidence": thresholds.finding_confidence,
        },
    )


def fold_secondary_verdict(finding: Finding, verdict: SecondaryVerdict) -> Optional[Finding]:
    """
    Apply a secondary reading to a content_uncertain finding.

    Only a high-confidence verdict changes the outcome: a match resolves the
    finding (None is returned), a non-match turns it into a content_mismatch.
    Lower tiers keep the finding and note the secondary reading in its message.
    Findings are never mutated; a new Finding is returned when anything changes.
    """
    if finding.type != FindingType.CONTENT_UNCERTAIN:
        return finding

    line_number = (finding.line_index or 0) + 1

    if verdict.confidence == "high":
        if verdict.matches_expected:
            return None
        return finding.model_copy(update={
            "id": _new_id(),
            "type": FindingType.CONTENT_MISMATCH,
            "confidence": SECONDARY_MISMATCH_CONFIDENCE,
            "observed_text": verdict.transcription,
            "message": (
                f"Line {line_number}: Content does not match expected text "
                f"(secondary reading: \"{verdict.transcription}\")"
            ),
        })

    return finding.model_copy(update={
        "message": (
            f"{finding.message} (secondary reading, {verdict.confidence} confidence: "
            f"\"{verdict.transcription}\")"
        ),
    })
