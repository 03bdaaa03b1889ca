"""
Pytest configuration for the plugforge test suite.

Integration tests (marked ``integration``) need a real Go toolchain and are
skipped unless the --full flag is given.
"""

import pytest  # noqa: F401


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--full",
        action="store_true",
        default=False,
        help="Run full test suite including integration tests (slow)",
    )


def pytest_configure(config):
    """Configure pytest based on command-line options."""
    config.addinivalue_line("markers", "integration: needs a real Go toolchain (run with --full)")
    markexpr = config.getoption("-m", "")
    if config.getoption("--full"):
        if markexpr == "not integration":
            # Clear the marker expression to run all tests
            config.option.markexpr = ""
    elif not markexpr:
        config.option.markexpr = "not integration"
