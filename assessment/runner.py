"""
Pipeline runner: orchestrates the full assessment pipeline.
Runs load → preprocess → line detection → OCR → verification →
handwriting checks → quality gate → scoring for one submission.
"""

import logging
import math
import threading
from typing import Callable, List, Optional

from assessment.config import Settings
from assessment.handwriting import check_handwriting
from assessment.ingest import load_pages
from assessment.numbering import check_numbering
from assessment.ocr import OcrProvider, get_ocr_provider
from assessment.preprocess import analyze_page
from assessment.quality import compute_quality_gate
from assessment.raster import PageRaster
from assessment.reconcile import reconcile_page
from assessment.schema import (
    AssessmentResult,
    AssignmentSpec,
    DetectedLine,
    ExtractedLine,
    Finding,
    FindingType,
    PageData,
    PipelineProgress,
    PipelineStep,
    QualityGate,
    QualityMetrics,
    QualityStatus,
    ReportLine,
    ScoreBreakdown,
)
from assessment.scoring import calculate_score
from assessment.secondary import SecondaryVerifier, crop_line_image, get_secondary_verifier
from assessment.segment import detect_lines
from assessment.verify import fold_secondary_verdict, summarize_confidence_metrics, verify_content

logger = logging.getLogger(__name__)

PIPELINE_STEPS = [
    PipelineStep.LOAD,
    PipelineStep.PREPROCESS,
    PipelineStep.DETECT_LINES,
    PipelineStep.OCR,
    PipelineStep.VERIFY_CONTENT,
    PipelineStep.CHECK_HANDWRITING,
    PipelineStep.QUALITY_GATE,
    PipelineStep.SCORE,
]


class PipelineCancelled(Exception):
    """The caller cancelled the run. Not a failure: no report is produced."""


class CancellationToken:
    """Cooperative cancellation flag shared between the caller and one run."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PipelineCancelled("Pipeline cancelled")


class ProgressReporter:
    """
    Emits PipelineProgress to an optional callback.

    Progress never decreases, and a failing callback is logged and ignored so
    reporting can never stop the pipeline.
    """

    def __init__(self, callback: Optional[Callable[[PipelineProgress], None]] = None):
        self._callback = callback
        self._last = 0.0

    def _emit(self, progress: PipelineProgress) -> None:
        if self._callback is None:
            return
        try:
            self._callback(progress)
        except Exception as e:
            logger.warning(f"Progress callback raised {e.__class__.__name__}: {e}")

    def report(self, step: PipelineStep, message: str, step_progress: float = 0.0) -> None:
        step_index = PIPELINE_STEPS.index(step)
        total = len(PIPELINE_STEPS)
        step_progress = max(0.0, min(1.0, step_progress))
        fraction = (step_index + step_progress) / total
        self._last = max(self._last, min(1.0, fraction))
        self._emit(PipelineProgress(
            step=step,
            step_index=step_index,
            total_steps=total,
            message=message,
            progress=self._last,
        ))

    def complete(self, message: str = "Assessment complete") -> None:
        self._last = 1.0
        self._emit(PipelineProgress(
            step=PipelineStep.COMPLETE,
            step_index=len(PIPELINE_STEPS),
            total_steps=len(PIPELINE_STEPS),
            message=message,
            progress=1.0,
        ))


def _page_data(raster: PageRaster, embed_image: bool) -> PageData:
    return PageData(
        width=raster.width,
        height=raster.height,
        image_data_ref=raster.to_data_url(quality=80) if embed_image else None,
    )


def _to_global_index(line: ExtractedLine, global_index: int) -> ExtractedLine:
    return line.model_copy(update={
        "line_index": global_index,
        "characters": [c.model_copy(update={"line_index": global_index}) for c in line.characters],
    })


def _report_line(line: ExtractedLine) -> ReportLine:
    return ReportLine(
        line_index=line.line_index,
        page_index=line.page_index,
        text=line.text,
        confidence=line.confidence,
        bbox=line.bbox,
    )


def _apply_secondary_verification(
    findings: List[Finding],
    extracted: List[ExtractedLine],
    rasters: List[PageRaster],
    verifier: SecondaryVerifier,
    max_lines: int,
    cancel_token: CancellationToken,
) -> List[Finding]:
    """Ask the verifier about up to max_lines uncertain lines and fold the verdicts in."""
    checked = 0
    result: List[Finding] = []
    for finding in findings:
        if (
            finding.type != FindingType.CONTENT_UNCERTAIN
            or checked >= max_lines
            or finding.line_index is None
            or finding.line_index >= len(extracted)
        ):
            result.append(finding)
            continue

        cancel_token.raise_if_cancelled()
        line = extracted[finding.line_index]
        checked += 1
        try:
            image_b64 = crop_line_image(rasters[line.page_index], finding.bbox)
            verdict = verifier.verify_line(image_b64, finding.expected_text or "", finding.line_index)
        except Exception as e:
            logger.warning(f"Secondary verification failed for line {finding.line_index + 1}: {e}")
            result.append(finding)
            continue

        folded = fold_secondary_verdict(finding, verdict)
        if folded is not None:
            result.append(folded)
    return result


def run_assessment(
    file_bytes: bytes,
    assignment: AssignmentSpec,
    ocr_provider: Optional[OcrProvider] = None,
    filename: Optional[str] = None,
    settings: Optional[Settings] = None,
    on_progress: Optional[Callable[[PipelineProgress], None]] = None,
    cancel_token: Optional[CancellationToken] = None,
    secondary_verifier: Optional[SecondaryVerifier] = None,
) -> AssessmentResult:
    """
    Runs the complete assessment pipeline for a single submission.

    Args:
        file_bytes: Uploaded image or PDF
        assignment: What the submission is graded against
        ocr_provider: OCR provider; built from settings when omitted
        filename: Original filename, used to recognize PDFs
        settings: Runtime settings; Settings.from_env() when omitted
        on_progress: Called with PipelineProgress at each checkpoint
        cancel_token: Checked at every stage boundary
        secondary_verifier: Optional verifier for uncertain lines; built from
            settings when omitted

    Returns:
        AssessmentResult

    Raises:
        PipelineCancelled: the token was cancelled
        UnreadableInputError: the file could not be decoded
    """
    settings = settings or Settings.from_env()
    thresholds = settings.thresholds
    cancel_token = cancel_token or CancellationToken()
    progress = ProgressReporter(on_progress)
    required = assignment.required_line_count

    if ocr_provider is None:
        ocr_provider = get_ocr_provider(settings.ocr_provider)
    if secondary_verifier is None:
        secondary_verifier = get_secondary_verifier(settings.secondary_verifier, settings.openai_model)

    # Stage 1: Load
    progress.report(PipelineStep.LOAD, "Loading file...")
    cancel_token.raise_if_cancelled()
    pages = load_pages(
        file_bytes,
        filename=filename,
        max_dim=settings.max_image_dim,
        pdf_render_scale=settings.pdf_render_scale,
    )
    progress.report(PipelineStep.LOAD, f"Loaded {len(pages)} page(s)", 1.0)
    cancel_token.raise_if_cancelled()

    # Stage 2: Preprocess
    progress.report(PipelineStep.PREPROCESS, "Analyzing image quality...")
    rejection_reasons: List[str] = []
    page_metrics: List[QualityMetrics] = []
    page_data: List[PageData] = []
    rasters: List[PageRaster] = []
    for i, raster in enumerate(pages):
        progress.report(PipelineStep.PREPROCESS, f"Processing page {i + 1}/{len(pages)}...", i / len(pages))
        analysis = analyze_page(raster, apply_corrections=settings.auto_correct, thresholds=thresholds)
        rejection_reasons.extend(f"Page {i + 1}: {reason}" for reason in analysis.rejection_reasons)
        page_metrics.append(analysis.metrics)
        rasters.append(analysis.raster)
        page_data.append(_page_data(analysis.raster, settings.embed_page_images))
    cancel_token.raise_if_cancelled()

    if rejection_reasons:
        logger.info(f"Submission rejected before OCR: {len(rejection_reasons)} reason(s)")
        progress.complete("Assessment complete - image quality issues detected")
        return AssessmentResult(
            pages=page_data,
            extracted_lines=[],
            detected_line_count=0,
            quality=QualityGate(
                status=QualityStatus.UNGRADABLE,
                reasons=rejection_reasons,
                confidence_coverage=0.0,
            ),
            findings=[],
            score=ScoreBreakdown(),
            page_metrics=page_metrics,
        )

    # Stage 3: Line detection
    progress.report(PipelineStep.DETECT_LINES, "Detecting text lines...")
    lines_per_page = math.ceil(required / len(rasters))
    detected: List[List[DetectedLine]] = []
    total_detected = 0
    for i, raster in enumerate(rasters):
        expected_for_page = max(0, min(lines_per_page, required - total_detected))
        page_lines = detect_lines(raster, expected_for_page, thresholds)
        detected.append(page_lines)
        total_detected += len(page_lines)
        progress.report(
            PipelineStep.DETECT_LINES,
            f"Detected {len(page_lines)} lines on page {i + 1}",
            (i + 1) / len(rasters),
        )

    # Stage 4: OCR, pages in order so global line indices follow page order
    progress.report(PipelineStep.OCR, "Recognizing text...")
    extracted: List[ExtractedLine] = []
    ocr_failed = False
    ocr_error_message: Optional[str] = None
    for i, (raster, page_lines) in enumerate(zip(rasters, detected)):
        cancel_token.raise_if_cancelled()
        progress.report(PipelineStep.OCR, f"Recognizing page {i + 1}/{len(rasters)}...", i / len(rasters))
        outcome = reconcile_page(ocr_provider, raster, page_lines)
        cancel_token.raise_if_cancelled()
        if outcome.failed:
            ocr_failed = True
            ocr_error_message = outcome.error_message
        for line in outcome.lines:
            extracted.append(_to_global_index(line, len(extracted)))
    progress.report(PipelineStep.OCR, "OCR complete", 1.0)

    # Stage 5: Content verification
    cancel_token.raise_if_cancelled()
    progress.report(PipelineStep.VERIFY_CONTENT, "Verifying content...")
    verification = verify_content(extracted, assignment.expected_lines, thresholds)
    content_findings = verification.findings
    uncertain_count = verification.uncertain_count

    if secondary_verifier is not None and settings.secondary_max_lines > 0 and not ocr_failed:
        progress.report(PipelineStep.VERIFY_CONTENT, "Double-checking uncertain lines...", 0.5)
        before = sum(1 for f in content_findings if f.type == FindingType.CONTENT_UNCERTAIN)
        content_findings = _apply_secondary_verification(
            content_findings,
            extracted,
            rasters,
            secondary_verifier,
            settings.secondary_max_lines,
            cancel_token,
        )
        after = sum(1 for f in content_findings if f.type == FindingType.CONTENT_UNCERTAIN)
        uncertain_count = max(0, uncertain_count - (before - after))

    numbering_findings = check_numbering(extracted, assignment.numbering, required, thresholds)
    confidence_metrics = summarize_confidence_metrics(verification.line_records, thresholds)

    # Stage 6: Handwriting mechanics
    cancel_token.raise_if_cancelled()
    progress.report(PipelineStep.CHECK_HANDWRITING, "Checking handwriting mechanics...")
    handwriting_findings: List[Finding] = []
    for raster in rasters:
        page_lines = [line for line in extracted if line.page_index == raster.page_index]
        handwriting_findings.extend(check_handwriting(raster, page_lines, thresholds))

    findings = content_findings + numbering_findings + handwriting_findings

    # Stage 7: Quality gate
    cancel_token.raise_if_cancelled()
    progress.report(PipelineStep.QUALITY_GATE, "Evaluating quality...")
    quality = compute_quality_gate(
        extracted,
        findings,
        uncertain_count,
        required,
        ocr_failed=ocr_failed,
        ocr_error_message=ocr_error_message,
        thresholds=thresholds,
    )

    # Stage 8: Score
    cancel_token.raise_if_cancelled()
    progress.report(PipelineStep.SCORE, "Calculating score...")
    score = calculate_score(extracted, findings, quality, required, thresholds)

    if quality.status == QualityStatus.UNGRADABLE:
        findings = [f for f in findings if f.type != FindingType.CONTENT_UNCERTAIN]

    logger.info(
        f"Assessment complete: status={quality.status.value}, overall={score.overall}, "
        f"{len(findings)} finding(s), {total_detected} line(s) detected"
    )
    progress.complete()

    return AssessmentResult(
        pages=page_data,
        extracted_lines=[_report_line(line) for line in extracted],
        detected_line_count=total_detected,
        quality=quality,
        findings=findings,
        score=score,
        page_metrics=page_metrics,
        confidence_metrics=confidence_metrics,
    )
