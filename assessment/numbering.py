"""
Line numbering check for assignments that ask students to number their lines.
"""

import re
import uuid
from typing import List

from assessment.config import DEFAULT_THRESHOLDS, Thresholds
from assessment.schema import BoundingBox, ExtractedLine, Finding, FindingType, NumberingRule

MARKERS = {"dot": ".", "paren": ")", "dash": "-"}

_LEADING_NUMBER = re.compile(r"^\s*(\d+)\s*([.)\-])?")


def check_numbering(
    lines: List[ExtractedLine],
    rule: NumberingRule,
    required_line_count: int,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> List[Finding]:
    """
    Check that each confidently read line starts with its expected number.

    Lines below the high OCR confidence bar are skipped; a misread digit is
    not evidence of a numbering mistake.
    """
    if not rule.required:
        return []

    marker = MARKERS[rule.format]
    findings = []
    for line in lines:
        if line.line_index >= required_line_count:
            continue
        if line.confidence < thresholds.ocr_high_confidence:
            continue

        expected_label = f"{rule.start_at + line.line_index}{marker}"
        match = _LEADING_NUMBER.match(line.text)
        if match and f"{int(match.group(1))}{match.group(2) or ''}" == expected_label:
            continue

        if match:
            found = f"{match.group(1)}{match.group(2) or ''}"
            message = f"Line {line.line_index + 1}: Expected numbering \"{expected_label}\" but found \"{found}\""
        else:
            message = f"Line {line.line_index + 1}: Missing line number \"{expected_label}\""

        findings.append(Finding(
            id=str(uuid.uuid4()),
            page_index=line.page_index,
            type=FindingType.NUMBERING_ERROR,
            bbox=line.bbox or BoundingBox(x=0, y=line.line_index * 30, w=100, h=30),
            line_index=line.line_index,
            observed_text=line.text,
            confidence=line.confidence * thresholds.handwriting_confidence_discount,
            message=message,
        ))
    return findings
