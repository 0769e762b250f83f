# PrivMsg Test Suite
"""
Test suite including:
- Unit tests per module
- End-to-end messaging flows
- Security tests (forged, expired and out-of-scope capabilities)

Run with: pytest
Coverage: coverage run -m pytest && coverage report
"""
