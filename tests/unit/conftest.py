"""
Pytest configuration for unit tests.

Disables telemetry and keeps real credentials out of the test environment.
"""

import os


def pytest_configure(config):
    """Configure telemetry for unit tests."""
    # get_tracer() returns a NoOpTracer so spans never reach a configured SDK
    os.environ["NLQUERY_TELEMETRY_ENABLED"] = "false"
