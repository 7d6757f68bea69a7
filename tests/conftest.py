# ===============================================================================
# PYTEST CONFIGURATION FOR HYDROBILL PLATFORM
# ===============================================================================
"""
Global test configuration for HydroBill Platform.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- tests/factories/ holds shared model factories
- Naming convention: test_{app}_{feature}.py
"""

import os

import pytest


def pytest_configure():
    """Default to the test settings when pytest is run without pytest.ini options"""
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.test")


@pytest.fixture(autouse=True)
def fresh_tariff_schedules():
    """Test transactions roll back tariff rows the shared repository may have cached"""
    from apps.tariffs.apps import tariff_repository  # noqa: PLC0415

    tariff_repository().invalidate()
    yield
    tariff_repository().invalidate()
