"""
Pipeline thresholds and runtime settings.

Thresholds are fixed for grading: changing them changes scores, so only the
capture-condition limits (blur floor, glare ceiling) can be overridden from the
environment. Everything else is read from Settings.from_env().
"""

import os
from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class Thresholds:
    """Constants used by every stage of the assessment pipeline."""

    # Preprocessing
    ink_luminance: float = 200.0  # below this a pixel counts as ink for blur scoring
    min_ink_coverage: float = 0.01  # blur scoring skipped below this
    blur_normalizer: float = 500.0
    min_blur_score: float = 0.15  # below this the page is too blurry
    glare_luminance: float = 240.0
    max_glare_score: float = 0.25
    min_contrast: float = 0.3  # auto-enhance below this
    max_contrast_factor: float = 2.0

    # Line segmentation
    projection_threshold_ratio: float = 0.2
    min_line_height: int = 10
    line_darkness_normalizer: float = 50.0
    fallback_line_confidence: float = 0.5

    # Content verification
    line_confidence_uncertain: float = 0.70
    ocr_high_confidence: float = 0.85
    match_similarity: float = 0.90
    finding_confidence: float = 0.92
    mismatch_similarity: float = 0.70
    missing_line_confidence: float = 0.99

    # Handwriting mechanics
    handwriting_confidence: float = 0.95
    handwriting_confidence_discount: float = 0.95
    dark_pixel_luminance: float = 128.0
    min_i_dot_ratio: float = 0.05
    min_t_cross_ratio: float = 0.08

    # Quality gate
    min_line_ratio: float = 0.5
    min_coverage: float = 0.6
    max_uncertain_ratio: float = 0.4

    # Scoring
    completeness_weight: float = 0.2
    content_weight: float = 0.5
    handwriting_weight: float = 0.3
    handwriting_penalty: int = 5


DEFAULT_THRESHOLDS = Thresholds()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for one assessment run."""

    ocr_provider: str = "google"
    max_image_dim: int = 2000  # larger photos are scaled down before analysis
    pdf_render_scale: float = 2.0  # relative to 72 DPI
    auto_correct: bool = True
    embed_page_images: bool = True
    secondary_verifier: str = "none"  # "none" | "openai"
    secondary_max_lines: int = 5
    openai_model: str = "gpt-4o-mini"
    thresholds: Thresholds = field(default_factory=Thresholds)

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from ASSESS_* environment variables.

        Call load_dotenv() first if a .env file should be honored.
        """
        thresholds = replace(
            DEFAULT_THRESHOLDS,
            max_glare_score=_env_float("ASSESS_MAX_GLARE", DEFAULT_THRESHOLDS.max_glare_score),
            min_blur_score=_env_float("ASSESS_MIN_BLUR", DEFAULT_THRESHOLDS.min_blur_score),
        )
        return cls(
            ocr_provider=os.environ.get("ASSESS_OCR_PROVIDER", "google").strip() or "google",
            max_image_dim=_env_int("ASSESS_MAX_IMAGE_DIM", 2000),
            pdf_render_scale=_env_float("ASSESS_PDF_RENDER_SCALE", 2.0),
            auto_correct=_env_bool("ASSESS_AUTO_CORRECT", True),
            embed_page_images=_env_bool("ASSESS_EMBED_PAGE_IMAGES", True),
            secondary_verifier=os.environ.get("ASSESS_SECONDARY_VERIFIER", "none").strip().lower() or "none",
            secondary_max_lines=_env_int("ASSESS_SECONDARY_MAX_LINES", 5),
            openai_model=os.environ.get("OPENAI_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini",
            thresholds=thresholds,
        )
