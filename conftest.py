"""Pytest hooks for the handwriting assessment pipeline. Remind to set Google credentials for live OCR runs."""

import os


def pytest_configure(config):
    """Tests use the stub OCR provider; live Google OCR needs GOOGLE_APPLICATION_CREDENTIALS."""
    if not os.environ.get("GOOGLE_APPLICATION_CREDENTIALS"):
        print(
            "\nTip: tests run with the stub OCR provider. For live runs export credentials "
            "(the key JSON or a file path): "
            "export GOOGLE_APPLICATION_CREDENTIALS='{\"type\":\"service_account\",...}'\n",
            end="",
        )
