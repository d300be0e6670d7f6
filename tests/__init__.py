"""Test suite for tcga-explorer.

Test organization:
- fixtures/: Mock cohort generators and test utilities
- unit/: Unit tests for individual modules

Run tests with:
    pytest tests/
    pytest tests/unit/
    pytest tests/ -v --tb=short
"""
