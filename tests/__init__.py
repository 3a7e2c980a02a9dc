"""
Test Suite

This module contains all tests for the Asset Lifecycle Service.

Structure:
    tests/
    ├── __init__.py         # This file
    ├── conftest.py         # Pytest fixtures
    ├── unit/               # Domain, engine and store tests
    └── integration/        # API endpoint tests

To run tests:
    pytest tests/
    pytest tests/unit/
    pytest tests/integration/
"""
