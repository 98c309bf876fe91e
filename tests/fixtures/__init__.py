"""Test Fixtures Package

Provides reusable test fixtures for all test modules.

Fixtures:
- test_database: In-memory row store and seeding helpers
- market_data: Synthetic candles, daily series and fake upstream clients
"""
