"""
Tests for the quality gate and score calculation.
"""

import pytest


def _lines(*confidences):
    from assessment.schema import ExtractedLine
    return [ExtractedLine(line_index=i, text="x", confidence=c) for i, c in enumerate(confidences)]


def _finding(finding_type, index=0):
    from assessment.schema import BoundingBox, Finding
    return Finding(
        id=f"f{index}",
        page_index=0,
        type=finding_type,
        bbox=BoundingBox(),
        line_index=index,
        confidence=0.95,
        message="test",
    )


class TestQualityGate:

    def test_too_few_lines_detected(self):
        from assessment.quality import compute_quality_gate
        from assessment.schema import QualityStatus
        gate = compute_quality_gate(_lines(0.3), [], 0, required_line_count=10)

        assert gate.status == QualityStatus.UNGRADABLE
        assert gate.reasons[0].startswith("Only 1 lines detected out of 10 expected.")
        assert gate.confidence_coverage == pytest.approx(0.1)

    def test_one_uncertain_line_is_uncertain(self):
        from assessment.quality import compute_quality_gate
        from assessment.schema import QualityStatus
        gate = compute_quality_gate(_lines(0.9, 0.9, 0.9, 0.9, 0.9), [], 1, required_line_count=5)

        assert gate.status == QualityStatus.UNCERTAIN
        assert gate.reasons == ["1 line(s) could not be verified with high confidence"]
        assert gate.confidence_coverage == 1.0

    def test_pervasive_uncertainty_is_still_graded(self):
        from assessment.quality import compute_quality_gate
        from assessment.schema import QualityStatus
        gate = compute_quality_gate(_lines(0.9, 0.9, 0.9, 0.9, 0.9), [], 3, required_line_count=5)

        assert gate.status == QualityStatus.UNCERTAIN
        assert gate.reasons == ["3 of 5 lines have uncertain verification"]

    def test_low_coverage_is_ungradable(self):
        from assessment.quality import compute_quality_gate
        from assessment.schema import QualityStatus
        gate = compute_quality_gate(_lines(0.9, 0.9, 0.5, 0.5, 0.5), [], 3, required_line_count=5)

        assert gate.status == QualityStatus.UNGRADABLE
        assert gate.reasons == ["Only 40% of lines could be verified with sufficient confidence"]
        assert gate.confidence_coverage == pytest.approx(0.4)

    def test_ocr_failure_wins(self):
        from assessment.quality import OCR_RETRY_HINT, compute_quality_gate
        from assessment.schema import QualityStatus
        gate = compute_quality_gate(
            _lines(0.9, 0.9, 0.9), [], 0, required_line_count=3,
            ocr_failed=True, ocr_error_message="503 Service Unavailable",
        )

        assert gate.status == QualityStatus.UNGRADABLE
        assert gate.reasons == ["OCR failed: 503 Service Unavailable", OCR_RETRY_HINT]
        assert gate.confidence_coverage == 0.0

    def test_ocr_failure_without_detail(self):
        from assessment.quality import compute_quality_gate
        gate = compute_quality_gate([], [], 0, required_line_count=3, ocr_failed=True)
        assert gate.reasons[0] == "OCR failed: Text recognition service unavailable"

    def test_uncertain_findings_reason(self):
        from assessment.quality import compute_quality_gate
        from assessment.schema import FindingType, QualityStatus
        findings = [_finding(FindingType.CONTENT_UNCERTAIN)]
        gate = compute_quality_gate(_lines(0.9, 0.9, 0.9), findings, 1, required_line_count=3)

        assert gate.status == QualityStatus.UNCERTAIN
        assert gate.reasons == [
            "1 line(s) could not be verified with high confidence",
            "1 line(s) marked as uncertain",
        ]

    def test_ok(self):
        from assessment.quality import compute_quality_gate
        from assessment.schema import FindingType, QualityStatus
        findings = [_finding(FindingType.CONTENT_MISMATCH), _finding(FindingType.MISSING_I_DOT)]
        gate = compute_quality_gate(_lines(0.9, 0.9, 0.9), findings, 0, required_line_count=3)

        assert gate.status == QualityStatus.OK
        assert gate.reasons == []

    def test_coverage_capped_at_one(self):
        from assessment.quality import compute_quality_gate
        gate = compute_quality_gate(_lines(0.9, 0.9, 0.9, 0.9), [], 0, required_line_count=2)
        assert gate.confidence_coverage == 1.0


class TestCalculateScore:

    def _gate(self, status):
        from assessment.schema import QualityGate
        return QualityGate(status=status, reasons=[], confidence_coverage=1.0)

    def test_ungradable_scores_zero(self):
        from assessment.schema import FindingType, QualityStatus
        from assessment.scoring import calculate_score
        findings = [_finding(FindingType.CONTENT_MISMATCH)]
        score = calculate_score(_lines(0.9, 0.9), findings, self._gate(QualityStatus.UNGRADABLE), 2)

        assert score.model_dump() == {"completeness": 0, "content": 0, "handwriting": 0, "overall": 0}

    def test_perfect(self):
        from assessment.schema import QualityStatus
        from assessment.scoring import calculate_score
        score = calculate_score(_lines(0.9, 0.9, 0.9), [], self._gate(QualityStatus.OK), 3)

        assert score.model_dump() == {"completeness": 100, "content": 100, "handwriting": 100, "overall": 100}

    def test_one_mismatch_in_four(self):
        from assessment.schema import FindingType, QualityStatus
        from assessment.scoring import calculate_score
        findings = [_finding(FindingType.CONTENT_MISMATCH)]
        score = calculate_score(_lines(0.9, 0.9, 0.9, 0.9), findings, self._gate(QualityStatus.OK), 4)

        assert score.content == 75
        # 20 + 37.5 + 30 rounds half up
        assert score.overall == 88

    def test_handwriting_penalty(self):
        from assessment.schema import FindingType, QualityStatus
        from assessment.scoring import calculate_score
        findings = [_finding(FindingType.MISSING_I_DOT), _finding(FindingType.UNCROSSED_T, 1)]
        score = calculate_score(_lines(0.9), findings, self._gate(QualityStatus.UNCERTAIN), 1)

        assert score.handwriting == 90
        assert score.overall == 97

    def test_uncertain_and_numbering_findings_not_penalized(self):
        from assessment.schema import FindingType, QualityStatus
        from assessment.scoring import calculate_score
        findings = [_finding(FindingType.CONTENT_UNCERTAIN), _finding(FindingType.NUMBERING_ERROR, 1)]
        score = calculate_score(_lines(0.9, 0.9), findings, self._gate(QualityStatus.UNCERTAIN), 2)
        assert score.overall == 100

    def test_completeness_capped(self):
        from assessment.schema import QualityStatus
        from assessment.scoring import calculate_score
        score = calculate_score(_lines(0.9, 0.9, 0.9), [], self._gate(QualityStatus.OK), 2)
        assert score.completeness == 100

    def test_partial_completeness_rounds_half_up(self):
        from assessment.schema import QualityStatus
        from assessment.scoring import calculate_score
        # 5 of 8 lines = 62.5%
        score = calculate_score(_lines(*[0.9] * 5), [], self._gate(QualityStatus.OK), 8)
        assert score.completeness == 63

    def test_content_floor_at_zero(self):
        from assessment.schema import FindingType, QualityStatus
        from assessment.scoring import calculate_score
        findings = [_finding(FindingType.CONTENT_MISMATCH, i) for i in range(5)]
        score = calculate_score(_lines(0.9, 0.9), findings, self._gate(QualityStatus.OK), 2)
        assert score.content == 0


class TestRoundHalfUp:

    @pytest.mark.parametrize("value,expected", [(0.5, 1), (1.5, 2), (2.5, 3), (2.49, 2), (87.5, 88)])
    def test_values(self, value, expected):
        from assessment.scoring import round_half_up
        assert round_half_up(value) == expected
