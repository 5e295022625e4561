"""
Segmentation module: finds candidate text lines on a page.

Uses a horizontal darkness projection; rows noticeably darker than the page
maximum are grouped into line bands. When nothing qualifies (a very faint or
blank page) the page is split into equal bands so OCR always has line geometry
to work with.
"""

import logging
from typing import List

import numpy as np

from assessment.config import DEFAULT_THRESHOLDS, Thresholds
from assessment.raster import PageRaster
from assessment.schema import BoundingBox, DetectedLine

logger = logging.getLogger(__name__)


def row_darkness_projection(raster: PageRaster) -> np.ndarray:
    """Mean ink density (255 - luminance) of each row."""
    if raster.width == 0:
        return np.zeros(raster.height)
    return (255.0 - raster.luminance).mean(axis=1)


def fallback_lines(
    width: int,
    height: int,
    expected_line_count: int,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> List[DetectedLine]:
    """Divide the page into equal bands, at least min_line_height pixels tall."""
    max_feasible = height // thresholds.min_line_height
    line_count = max(0, min(expected_line_count, max_feasible))
    if line_count == 0:
        return []
    line_height = height // line_count
    return [
        DetectedLine(
            line_index=i,
            bbox=BoundingBox(x=0, y=i * line_height, w=width, h=line_height),
            baseline=i * line_height + line_height / 2,
            confidence=thresholds.fallback_line_confidence,
        )
        for i in range(line_count)
    ]


def detect_lines(
    raster: PageRaster,
    expected_line_count: int,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> List[DetectedLine]:
    """
    Detect text lines from the row darkness projection.

    Args:
        raster: Page raster (after preprocessing)
        expected_line_count: Lines expected on this page; only used by the fallback
        thresholds: Pipeline thresholds

    Returns:
        DetectedLines with page-local indices 0..n-1, top to bottom
    """
    width, height = raster.width, raster.height
    projection = row_darkness_projection(raster)
    threshold = float(projection.max()) * thresholds.projection_threshold_ratio if projection.size else 0.0

    lines: List[DetectedLine] = []

    def close_run(start: int, end: int, peak: float, peak_y: int) -> None:
        line_height = end - start
        if line_height > thresholds.min_line_height:
            lines.append(DetectedLine(
                line_index=len(lines),
                bbox=BoundingBox(x=0, y=start, w=width, h=line_height),
                baseline=peak_y,
                confidence=min(1.0, peak / thresholds.line_darkness_normalizer),
            ))

    in_line = False
    line_start = 0
    peak_darkness = 0.0
    peak_y = 0
    for y in range(height):
        darkness = float(projection[y])
        if darkness > threshold:
            if not in_line:
                in_line = True
                line_start = y
                peak_darkness = 0.0
                peak_y = y
            if darkness > peak_darkness:
                peak_darkness = darkness
                peak_y = y
        elif in_line:
            in_line = False
            close_run(line_start, y, peak_darkness, peak_y)

    if in_line:
        close_run(line_start, height, peak_darkness, peak_y)

    if not lines:
        lines = fallback_lines(width, height, expected_line_count, thresholds)
        logger.info(
            f"Page {raster.page_index + 1}: no lines in projection, "
            f"fell back to {len(lines)} equal band(s)"
        )
    else:
        logger.info(f"Page {raster.page_index + 1}: detected {len(lines)} line(s)")

    return lines
