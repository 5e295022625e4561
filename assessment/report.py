"""
Report payload and artifact writing.

The payload is what downstream consumers store; it carries no
character-level OCR detail.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Union

from assessment.schema import AssessmentResult

logger = logging.getLogger(__name__)


def build_report_payload(result: AssessmentResult) -> Dict:
    """
    Build the JSON-ready report payload.

    Returns:
        Dict with pages, extracted_lines, detected_line_count, quality,
        findings and score
    """
    return {
        "pages": [page.model_dump() for page in result.pages],
        "extracted_lines": [line.model_dump() for line in result.extracted_lines],
        "detected_line_count": result.detected_line_count,
        "quality": result.quality.model_dump(mode="json"),
        "findings": [finding.model_dump(mode="json") for finding in result.findings],
        "score": result.score.model_dump(),
    }


def write_report_artifacts(result: AssessmentResult, artifact_dir: Union[str, Path]) -> Dict[str, Path]:
    """
    Write report.json and confidence_metrics.json to artifact_dir.

    confidence_metrics.json is only written when the run produced metrics
    (submissions rejected before OCR have none).

    Returns:
        Mapping of artifact name to written path
    """
    artifact_path = Path(artifact_dir)
    artifact_path.mkdir(parents=True, exist_ok=True)
    written = {}

    report_file = artifact_path / "report.json"
    with open(report_file, "w", encoding="utf-8") as f:
        json.dump(build_report_payload(result), f, indent=2)
    written["report"] = report_file

    if result.confidence_metrics is not None:
        metrics_file = artifact_path / "confidence_metrics.json"
        with open(metrics_file, "w", encoding="utf-8") as f:
            json.dump(result.confidence_metrics.model_dump(mode="json"), f, indent=2)
        written["confidence_metrics"] = metrics_file

    logger.info(f"Wrote {', '.join(p.name for p in written.values())} to {artifact_path}")
    return written
