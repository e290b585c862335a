"""
Test suite for Parks Admin Tables.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_table_controller.py -v
"""
