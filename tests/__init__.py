"""
Message archive test suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (SQLite, actors, HTTP intake)
"""
