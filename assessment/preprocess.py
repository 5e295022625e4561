"""
Image-quality analysis for a single page.

Computes blur, glare, brightness and contrast, decides whether the page can be
graded at all, and optionally stretches low contrast. A corrected page is
returned as a new raster; the input raster is never modified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

import numpy as np

from assessment.config import DEFAULT_THRESHOLDS, Thresholds
from assessment.raster import PageRaster
from assessment.schema import QualityMetrics

logger = logging.getLogger(__name__)

BLUR_REJECTION = "Image is too blurry - please retake the photo with better focus"
GLARE_REJECTION = "Too much glare detected - please retake without direct light reflection"


@dataclass
class PreprocessResult:
    metrics: QualityMetrics
    rejection_reasons: List[str] = field(default_factory=list)
    raster: PageRaster | None = None
    contrast_corrected: bool = False

    @property
    def rejected(self) -> bool:
        return bool(self.rejection_reasons)


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5)


def compute_blur_score(luminance: np.ndarray, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> float:
    """
    Laplacian sharpness measured on ink pixels only.

    Returns 1.0 (sharp) when less than min_ink_coverage of the page is ink,
    since an almost blank page says nothing about focus.
    """
    height, width = luminance.shape
    if height < 3 or width < 3:
        return 1.0

    ink = luminance < thresholds.ink_luminance
    if ink.mean() < thresholds.min_ink_coverage:
        return 1.0

    center = luminance[1:-1, 1:-1]
    laplacian = (
        luminance[:-2, 1:-1]
        + luminance[2:, 1:-1]
        + luminance[1:-1, :-2]
        + luminance[1:-1, 2:]
        - 4.0 * center
    )
    interior_ink = ink[1:-1, 1:-1]
    if not interior_ink.any():
        return 1.0

    energy = float(np.mean(np.square(laplacian[interior_ink])))
    return min(1.0, energy / thresholds.blur_normalizer)


def compute_glare_score(luminance: np.ndarray, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> float:
    """Fraction of pixels brighter than the glare cutoff."""
    if luminance.size == 0:
        return 0.0
    return float(np.count_nonzero(luminance > thresholds.glare_luminance) / luminance.size)


def _contrast(luminance: np.ndarray) -> float:
    if luminance.size == 0:
        return 0.0
    return float((luminance.max() - luminance.min()) / 255.0)


def enhance_contrast(raster: PageRaster, factor: float = 1.5) -> PageRaster:
    """
    Linear contrast stretch of every channel around the mean brightness.

    Returns a new raster.
    """
    avg_brightness = float(raster.luminance.mean())
    stretched = avg_brightness + (raster.pixels.astype(np.float64) - avg_brightness) * factor
    stretched = np.clip(_round_half_up(stretched), 0, 255)
    return raster.with_pixels(stretched.astype(np.uint8))


def analyze_page(
    raster: PageRaster,
    apply_corrections: bool = True,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> PreprocessResult:
    """
    Measure page quality and decide whether it is gradable.

    Args:
        raster: Page to analyze
        apply_corrections: Allow the contrast stretch when contrast is low
        thresholds: Pipeline thresholds

    Returns:
        PreprocessResult with metrics, rejection reasons (empty when acceptable)
        and the raster downstream stages must read
    """
    luminance = raster.luminance
    brightness = float(luminance.mean()) if luminance.size else 0.0
    contrast = _contrast(luminance)
    blur_score = compute_blur_score(luminance, thresholds)
    glare_score = compute_glare_score(luminance, thresholds)

    rejection_reasons: List[str] = []
    if blur_score < thresholds.min_blur_score:
        rejection_reasons.append(BLUR_REJECTION)
    if glare_score > thresholds.max_glare_score:
        rejection_reasons.append(GLARE_REJECTION)

    output = raster
    corrected = False
    if apply_corrections and not rejection_reasons and contrast < thresholds.min_contrast:
        if contrast > 0:
            factor = min(thresholds.max_contrast_factor, thresholds.min_contrast / contrast + 0.5)
        else:
            factor = thresholds.max_contrast_factor
        output = enhance_contrast(raster, factor)
        corrected = True
        new_contrast = _contrast(output.luminance)
        logger.info(
            f"Page {raster.page_index + 1}: contrast {contrast:.3f} below {thresholds.min_contrast:.2f}, "
            f"stretched by {factor:.2f} to {new_contrast:.3f}"
        )
        contrast = new_contrast

    if rejection_reasons:
        logger.info(f"Page {raster.page_index + 1} rejected: {'; '.join(rejection_reasons)}")

    metrics = QualityMetrics(
        blur_score=blur_score,
        glare_score=glare_score,
        skew_angle=0.0,
        brightness=brightness,
        contrast=contrast,
    )
    return PreprocessResult(
        metrics=metrics,
        rejection_reasons=rejection_reasons,
        raster=output,
        contrast_corrected=corrected,
    )
