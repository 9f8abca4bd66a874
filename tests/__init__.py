"""
Test suite for the price-list upload pipeline.

Run all tests: pytest
Run one file: pytest tests/unit/test_upload_orchestrator.py -v
"""
