"""Shared constants and helpers for the test suite."""

TEST_PASSWORD = "Test@1234"
NEW_PASSWORD = "Changed#5678"


def wrong_code(code: str) -> str:
    """Return a code of the same length that differs from ``code``."""
    return "0" * len(code) if code != "0" * len(code) else "1" * len(code)
