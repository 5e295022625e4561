"""
Data models for handwriting assessments.
Uses Pydantic for validation and type safety.
"""

from enum import Enum
from typing import Literal, Optional, List
from pydantic import BaseModel, ConfigDict, Field


class BoundingBox(BaseModel):
    """Axis-aligned box in page pixel coordinates."""
    model_config = ConfigDict(frozen=True)

    x: float = Field(default=0, ge=0)
    y: float = Field(default=0, ge=0)
    w: float = Field(default=0, ge=0)
    h: float = Field(default=0, ge=0)

    @classmethod
    def from_extent(cls, x: float, y: float, w: float, h: float) -> "BoundingBox":
        """Build a box from possibly negative coordinates, trimming to x, y >= 0."""
        x0, y0 = max(0.0, x), max(0.0, y)
        x1, y1 = max(x0, x + w), max(y0, y + h)
        return cls(x=x0, y=y0, w=x1 - x0, h=y1 - y0)

    def clamped(self, width: float, height: float) -> "BoundingBox":
        """Return the part of this box that lies inside a width x height page."""
        x0 = min(self.x, width)
        y0 = min(self.y, height)
        x1 = min(self.x + self.w, width)
        y1 = min(self.y + self.h, height)
        return BoundingBox(x=x0, y=y0, w=max(0.0, x1 - x0), h=max(0.0, y1 - y0))

    @property
    def center_y(self) -> float:
        return self.y + self.h / 2

    @property
    def bottom(self) -> float:
        return self.y + self.h


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------

class NumberingRule(BaseModel):
    """Whether lines must be numbered, and how (e.g. "1." / "1)" / "1-")."""
    required: bool = False
    start_at: int = 1
    format: Literal["dot", "paren", "dash"] = "dot"


class AssignmentSpec(BaseModel):
    """
    What a submitted page is graded against.
    Style and paper metadata are carried through but not used for grading.
    """
    assignment_id: str = ""
    required_line_count: int = Field(ge=1)
    expected_lines: List[str] = []
    expected_style: Literal["print", "cursive"] = "print"
    paper_type: Literal["ruled", "blank", "either"] = "either"
    numbering: NumberingRule = NumberingRule()
    due_date: Optional[str] = None  # ISO 8601


# ---------------------------------------------------------------------------
# OCR collaborator
# ---------------------------------------------------------------------------

class OcrSymbol(BaseModel):
    text: str
    confidence: float = 0.0
    bbox: BoundingBox = BoundingBox()


class OcrWord(BaseModel):
    text: str
    confidence: float = 0.0
    bbox: BoundingBox = BoundingBox()
    symbols: List[OcrSymbol] = []


class OcrResult(BaseModel):
    """Raw OCR output for one page image."""
    text: str = ""
    confidence_avg: float = 0.0
    words: List[OcrWord] = []


# ---------------------------------------------------------------------------
# Pipeline intermediates
# ---------------------------------------------------------------------------

class QualityMetrics(BaseModel):
    blur_score: float = Field(ge=0, le=1)  # higher is sharper
    glare_score: float = Field(ge=0, le=1)  # fraction of near-white pixels
    skew_angle: float = 0.0  # reported only, never corrected
    brightness: float = Field(ge=0, le=255)
    contrast: float = Field(ge=0, le=1)


class DetectedLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    line_index: int
    bbox: BoundingBox
    baseline: float
    confidence: float = Field(ge=0, le=1)


class CharacterObservation(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float
    bbox: BoundingBox
    line_index: int
    page_index: int


class ExtractedLine(BaseModel):
    """Recognized text of one line; line_index is global across pages."""
    model_config = ConfigDict(frozen=True)

    line_index: int
    page_index: int = 0
    text: str = ""
    confidence: float = 0.0
    bbox: Optional[BoundingBox] = None
    characters: List[CharacterObservation] = []


# ---------------------------------------------------------------------------
# Findings, quality and score
# ---------------------------------------------------------------------------

class FindingType(str, Enum):
    CONTENT_MISMATCH = "content_mismatch"
    CONTENT_UNCERTAIN = "content_uncertain"
    MISSING_I_DOT = "missing_i_dot"
    UNCROSSED_T = "uncrossed_t"
    NUMBERING_ERROR = "numbering_error"


HANDWRITING_FINDING_TYPES = (FindingType.MISSING_I_DOT, FindingType.UNCROSSED_T)


class Finding(BaseModel):
    """A single detected issue. Never mutated once created."""
    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str
    page_index: int = Field(ge=0)
    type: FindingType
    bbox: BoundingBox
    line_index: Optional[int] = None
    expected_text: Optional[str] = None
    observed_text: Optional[str] = None
    confidence: float = Field(ge=0, le=1)
    message: str


class QualityStatus(str, Enum):
    OK = "ok"
    UNCERTAIN = "uncertain"
    UNGRADABLE = "ungradable"


class QualityGate(BaseModel):
    status: QualityStatus
    reasons: List[str] = []
    confidence_coverage: float = Field(default=0.0, ge=0, le=1)


class ScoreBreakdown(BaseModel):
    completeness: int = Field(default=0, ge=0, le=100)
    content: int = Field(default=0, ge=0, le=100)
    handwriting: int = Field(default=0, ge=0, le=100)
    overall: int = Field(default=0, ge=0, le=100)


# ---------------------------------------------------------------------------
# Secondary verification and diagnostics
# ---------------------------------------------------------------------------

class SecondaryVerdict(BaseModel):
    """Reading of one cropped line by the optional vision verifier."""
    transcription: str = ""
    matches_expected: bool = False
    confidence: Literal["high", "medium", "low"] = "low"
    reasoning: Optional[str] = None


class LineConfidenceRecord(BaseModel):
    line_index: int
    ocr_confidence: float
    similarity: float
    finding_confidence: float
    decision: Literal["verified", "uncertain", "mismatch"]
    expected_text: str
    observed_text: str


class ConfidenceSummary(BaseModel):
    avg_ocr_confidence: float = 0.0
    min_ocr_confidence: float = 0.0
    max_ocr_confidence: float = 0.0
    avg_similarity: float = 0.0
    verified_count: int = 0
    uncertain_count: int = 0
    mismatch_count: int = 0


class OcrConfidenceMetrics(BaseModel):
    """Per-line OCR confidence diagnostics, kept for threshold tuning."""
    timestamp: str
    total_lines: int
    line_metrics: List[LineConfidenceRecord] = []
    summary: ConfidenceSummary = ConfidenceSummary()
    thresholds_used: dict = {}


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

class PipelineStep(str, Enum):
    LOAD = "load"
    PREPROCESS = "preprocess"
    DETECT_LINES = "detect_lines"
    OCR = "ocr"
    VERIFY_CONTENT = "verify_content"
    CHECK_HANDWRITING = "check_handwriting"
    QUALITY_GATE = "quality_gate"
    SCORE = "score"
    COMPLETE = "complete"


class PipelineProgress(BaseModel):
    step: PipelineStep
    step_index: int
    total_steps: int
    message: str
    progress: float = Field(ge=0, le=1)


class PageData(BaseModel):
    width: int
    height: int
    image_data_ref: Optional[str] = None  # JPEG data URL


class ReportLine(BaseModel):
    """ExtractedLine without character-level detail, as stored in reports."""
    line_index: int
    page_index: int
    text: str
    confidence: float
    bbox: Optional[BoundingBox] = None


class AssessmentResult(BaseModel):
    pages: List[PageData] = []
    extracted_lines: List[ReportLine] = []
    detected_line_count: int = 0
    quality: QualityGate
    findings: List[Finding] = []
    score: ScoreBreakdown = ScoreBreakdown()
    page_metrics: List[QualityMetrics] = []
    confidence_metrics: Optional[OcrConfidenceMetrics] = None
