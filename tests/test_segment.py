"""
Tests for line segmentation from the row darkness projection.
"""

import numpy as np


def _banded_page(width, height, bands, paper=230, ink=30):
    from assessment.raster import PageRaster
    values = np.full((height, width), paper, dtype=np.float64)
    for top, bottom in bands:
        values[top:bottom, :] = ink
    return PageRaster.from_luminance(values)


class TestDetectLines:

    def test_detects_each_band_top_to_bottom(self):
        from assessment.segment import detect_lines
        raster = _banded_page(100, 120, [(10, 24), (50, 64), (90, 104)])
        lines = detect_lines(raster, expected_line_count=3)

        assert [line.line_index for line in lines] == [0, 1, 2]
        assert [(line.bbox.y, line.bbox.h) for line in lines] == [(10, 14), (50, 14), (90, 14)]
        assert all(line.bbox.w == 100 for line in lines)
        assert all(line.confidence == 1.0 for line in lines)

    def test_short_runs_ignored(self):
        from assessment.segment import detect_lines
        # 8-row band is below the minimum height, the 14-row band is kept
        raster = _banded_page(100, 100, [(10, 18), (50, 64)])
        lines = detect_lines(raster, expected_line_count=2)

        assert len(lines) == 1
        assert lines[0].bbox.y == 50

    def test_run_touching_bottom_edge_is_closed(self):
        from assessment.segment import detect_lines
        raster = _banded_page(100, 60, [(10, 24), (45, 60)])
        lines = detect_lines(raster, expected_line_count=2)

        assert len(lines) == 2
        assert (lines[1].bbox.y, lines[1].bbox.h) == (45, 15)

    def test_baseline_at_darkest_row(self):
        from assessment.raster import PageRaster
        from assessment.segment import detect_lines
        values = np.full((60, 50), 230.0)
        values[20:35, :] = 120
        values[28, :] = 10
        lines = detect_lines(PageRaster.from_luminance(values), expected_line_count=1)

        assert len(lines) == 1
        assert lines[0].baseline == 28

    def test_faint_band_confidence_scaled(self):
        from assessment.segment import detect_lines
        # darkness 255 - 230 = 25 against a paper row darkness of 0
        raster = _banded_page(40, 60, [(20, 35)], paper=255, ink=230)
        lines = detect_lines(raster, expected_line_count=1)

        assert len(lines) == 1
        assert lines[0].confidence == 0.5


class TestFallbackLines:

    def test_blank_page_splits_evenly(self):
        from assessment.raster import PageRaster
        from assessment.segment import detect_lines
        raster = PageRaster.from_luminance(np.full((150, 80), 255.0))
        lines = detect_lines(raster, expected_line_count=3)

        assert len(lines) == 3
        assert [line.bbox.y for line in lines] == [0, 50, 100]
        assert all(line.bbox.h == 50 for line in lines)
        assert [line.baseline for line in lines] == [25, 75, 125]
        assert all(line.confidence == 0.5 for line in lines)

    def test_line_count_capped_by_min_height(self):
        from assessment.segment import fallback_lines
        lines = fallback_lines(width=100, height=25, expected_line_count=3)

        assert len(lines) == 2
        assert all(line.bbox.h == 12 for line in lines)

    def test_no_expected_lines_gives_none(self):
        from assessment.segment import fallback_lines
        assert fallback_lines(width=100, height=100, expected_line_count=0) == []
