"""
Integration tests for orderflow.

SQLite tests run against in-memory aiosqlite databases and need no
infrastructure. PostgreSQL tests use testcontainers and are skipped
automatically if Docker or testcontainers is not available.

Run integration tests:
    pytest tests/integration/ -v

Run only PostgreSQL tests:
    pytest tests/integration/ -v -m postgres

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
