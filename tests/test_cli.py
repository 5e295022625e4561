"""
Tests for the command-line entry point.
"""

import io
import json
import os
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    values = np.full((150, 300), 230, dtype=np.uint8)
    values[20:34, 10:291] = 30
    buf = io.BytesIO()
    Image.fromarray(values).save(buf, format="PNG")
    (tmp_path / "page.png").write_bytes(buf.getvalue())
    (tmp_path / "assignment.json").write_text(json.dumps({
        "assignment_id": "a-1",
        "required_line_count": 1,
        "expected_lines": ["hello"],
    }), encoding="utf-8")
    return tmp_path


class TestMain:

    @patch.dict(os.environ, {}, clear=True)
    def test_stub_run_writes_report(self, workdir):
        from assessment.cli import main
        code = main(["page.png", "--assignment", "assignment.json", "--provider", "stub",
                     "--out", "report.json", "--artifacts", "artifacts"])

        assert code == 0
        report = json.loads((workdir / "report.json").read_text(encoding="utf-8"))
        # the stub reads nothing, so no line can be verified
        assert report["quality"]["status"] == "ungradable"
        assert report["detected_line_count"] == 1
        assert (workdir / "artifacts" / "report.json").exists()

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_assignment(self, workdir):
        from assessment.cli import main
        assert main(["page.png", "--assignment", "nope.json", "--provider", "stub"]) == 1

    @patch.dict(os.environ, {}, clear=True)
    def test_invalid_assignment(self, workdir):
        from assessment.cli import main
        (workdir / "bad.json").write_text(json.dumps({"required_line_count": 0}), encoding="utf-8")
        assert main(["page.png", "--assignment", "bad.json", "--provider", "stub"]) == 1

    @patch.dict(os.environ, {}, clear=True)
    def test_unreadable_file(self, workdir):
        from assessment.cli import main
        (workdir / "junk.jpg").write_bytes(b"not an image")
        assert main(["junk.jpg", "--assignment", "assignment.json", "--provider", "stub"]) == 1

    @patch.dict(os.environ, {}, clear=True)
    def test_google_without_credentials_fails_at_startup(self, workdir):
        from assessment.cli import main
        with patch("assessment.cli.run_assessment") as mock_run:
            assert main(["page.png", "--assignment", "assignment.json", "--provider", "google"]) == 1
        mock_run.assert_not_called()

    @patch.dict(os.environ, {}, clear=True)
    def test_interrupt_exits_130(self, workdir):
        from assessment.cli import main
        with patch("assessment.cli.run_assessment", side_effect=KeyboardInterrupt):
            assert main(["page.png", "--assignment", "assignment.json", "--provider", "stub"]) == 130
