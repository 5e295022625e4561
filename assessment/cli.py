"""
Command-line entry point.

Usage:
    python -m assessment page.jpg --assignment assignment.json --provider google
    python -m assessment scan.pdf --assignment assignment.json --out report.json --artifacts out/
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from assessment.config import Settings
from assessment.ingest import UnreadableInputError
from assessment.ocr import ensure_google_credentials
from assessment.report import build_report_payload, write_report_artifacts
from assessment.runner import PipelineCancelled, run_assessment
from assessment.schema import AssignmentSpec

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Assess a handwriting exercise against its assignment.")
    parser.add_argument("file", help="Image or PDF of the handwritten page(s).")
    parser.add_argument("--assignment", required=True, help="Assignment JSON file.")
    parser.add_argument("--provider", choices=["stub", "google"], default=None,
                        help="OCR provider (default: ASSESS_OCR_PROVIDER or google).")
    parser.add_argument("--out", default=None, help="Write the report JSON here instead of stdout.")
    parser.add_argument("--artifacts", default=None,
                        help="Directory for report.json and confidence_metrics.json.")
    parser.add_argument("--no-auto-correct", action="store_true", help="Disable contrast auto-correction.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    return parser


def load_assignment(path: Path) -> AssignmentSpec:
    with open(path, "r", encoding="utf-8") as f:
        return AssignmentSpec.model_validate(json.load(f))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s'
    )
    load_dotenv(Path.cwd() / ".env")

    try:
        settings = Settings.from_env()
        if args.provider:
            settings = replace(settings, ocr_provider=args.provider)
        if args.no_auto_correct:
            settings = replace(settings, auto_correct=False)
        if settings.ocr_provider == "google":
            ensure_google_credentials()

        assignment = load_assignment(Path(args.assignment))
        file_path = Path(args.file)
        file_bytes = file_path.read_bytes()
    except (OSError, ValueError, ValidationError, RuntimeError) as e:
        logger.error(f"Could not start assessment: {e}")
        return EXIT_ERROR

    try:
        result = run_assessment(file_bytes, assignment, filename=file_path.name, settings=settings)
    except (PipelineCancelled, KeyboardInterrupt):
        logger.info("Assessment cancelled")
        return EXIT_CANCELLED
    except UnreadableInputError as e:
        logger.error(f"Unreadable input: {e}")
        return EXIT_ERROR
    except (RuntimeError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_ERROR

    payload = json.dumps(build_report_payload(result), indent=2)
    if args.out:
        Path(args.out).write_text(payload, encoding="utf-8")
        logger.info(f"Report written to {args.out}")
    else:
        sys.stdout.write(payload + "\n")

    if args.artifacts:
        write_report_artifacts(result, args.artifacts)

    logger.info(
        f"Status: {result.quality.status.value}, overall score: {result.score.overall}"
    )
    return EXIT_OK
