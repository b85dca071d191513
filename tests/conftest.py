"""Root conftest — markers shared by every test directory.

unit         fast, no network or disk I/O (applied to everything in tests/unit/)
integration  needs a live Redis or LLM endpoint; skipped unless
             SLEUTH_TEST_INTEGRATION=1
"""

from __future__ import annotations

import os

import pytest


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without network or disk I/O")
    config.addinivalue_line("markers", "integration: needs a live Redis or LLM endpoint")


def pytest_collection_modifyitems(config, items):
    run_integration = bool(os.getenv("SLEUTH_TEST_INTEGRATION"))
    skip_integration = pytest.mark.skip(reason="set SLEUTH_TEST_INTEGRATION=1 to run")
    for item in items:
        if "integration" in item.keywords:
            if not run_integration:
                item.add_marker(skip_integration)
        elif "unit" in item.path.parts:
            item.add_marker(pytest.mark.unit)
