"""
Component test configuration

Component tests run the service layer against real flat-file stores in a
temporary directory with provider clients mocked.
"""
import pytest


def pytest_collection_modifyitems(items):
    for item in items:
        if "/component/" in str(item.fspath):
            item.add_marker(pytest.mark.component)
