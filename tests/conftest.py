"""Shared pytest configuration for the taskcal_lite test suite."""


def pytest_configure(config):
    """Register markers used across the suite."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests exercising the HTTP application")
