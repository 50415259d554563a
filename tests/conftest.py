"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers:
    - api/        : HTTP contract tests (FastAPI app in-process)
    - component/  : Component tests (mocked providers, real flat-file stores)
    - unit/       : Unit tests (pure functions, no I/O)
"""
import os
import sys

import pytest

# Set testing environment BEFORE any imports of core.config
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("GOOGLE_SHEETS_URL", "")

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from tests.fixtures import WEBHOOK_SECRET


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "component: marks tests as component tests")
    config.addinivalue_line("markers", "api: marks tests as HTTP contract tests")


@pytest.fixture
def webhook_secret() -> str:
    """Shared webhook secret used to sign test webhooks"""
    return WEBHOOK_SECRET


@pytest.fixture
def data_dir(tmp_path) -> str:
    """Isolated flat-file data directory"""
    path = tmp_path / "data"
    path.mkdir()
    return str(path)
