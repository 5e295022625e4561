"""
Assessment package exports.
"""

from assessment.runner import CancellationToken, PipelineCancelled, run_assessment

__all__ = ["CancellationToken", "PipelineCancelled", "run_assessment"]
