"""
Pytest configuration and fixtures for deployer tests.
"""

from pathlib import Path

import pytest
from structlog.contextvars import clear_contextvars

from static_deployer.core.config import Settings


@pytest.fixture(autouse=True)
def clean_log_context():
    """
    Drop structlog context bound by a previous test (deployment name, request id).
    """
    clear_contextvars()
    yield
    clear_contextvars()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing every path into the test's temp directory."""
    return Settings(
        staging_dir=str(tmp_path / "staging"),
        quota_file=str(tmp_path / "quota.json"),
        public_dir=None,
        cleanup_delay_seconds=60,
        metrics_enabled=False,
        log_format="console",
    )
