# tests\__init__.py
"""
Test Suite for orderflow.

Organization:
- `core`: Use cases and domain models with mocked ports.
- `adapters`: SQL repository (temporary SQLite file), storage throttler,
  realtime registry, mailer, cache and the HTTP API.
- `integration`: Submit -> Upload -> Decision -> Email flows through the
  container with real persistence and the maintenance sweeper.
"""
