"""
Pytest configuration and shared fixtures.
"""
import os
import sqlite3

import pytest
from sqlalchemy import create_engine, event

from sqlwarden import config as sqlwarden_config
from sqlwarden.config import Profile, ProfileLimits, ProfileTable
from sqlwarden.sql.executor import BoundedExecutor


class CountingEngineFactory:
    """Engine factory test double that counts engines and DBAPI connections."""

    def __init__(self):
        self.engines_created = 0
        self.connections_opened = 0
        self.connections_closed = 0
        self.urls = []

    def __call__(self, url, **kwargs):
        engine = create_engine(url, **kwargs)
        self.engines_created += 1
        self.urls.append(url)
        event.listen(engine, "connect", self._on_connect)
        event.listen(engine, "close", self._on_close)
        return engine

    def _on_connect(self, dbapi_connection, connection_record):
        self.connections_opened += 1

    def _on_close(self, dbapi_connection, connection_record):
        self.connections_closed += 1


@pytest.fixture
def sample_db(tmp_path):
    """
    Create a temporary SQLite database with users and orders.
    users has 10 rows; one user has a NULL email.
    """
    db_path = tmp_path / "shop.sqlite"
    conn = sqlite3.connect(str(db_path))

    conn.execute("""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT
        )
    """)
    conn.execute("""
        CREATE TABLE orders (
            id INTEGER PRIMARY KEY,
            user_id INTEGER NOT NULL,
            amount REAL NOT NULL
        )
    """)

    users = [(i, f"user{i}", None if i == 3 else f"user{i}@example.com") for i in range(1, 11)]
    conn.executemany("INSERT INTO users (id, name, email) VALUES (?, ?, ?)", users)
    conn.executemany(
        "INSERT INTO orders (user_id, amount) VALUES (?, ?)",
        [(1, 25.50), (1, 10.00), (2, 99.99)],
    )

    conn.commit()
    conn.close()
    return db_path


@pytest.fixture
def sqlite_url(sample_db):
    return f"sqlite:///{sample_db}"


@pytest.fixture
def profile_table(sqlite_url):
    """'default' uses the stock limits; 'warehouse' is tight for truncation tests."""
    return ProfileTable(
        [
            Profile(name="default", connection_string=sqlite_url, description="Shop database"),
            Profile(
                name="warehouse",
                connection_string=sqlite_url,
                limits=ProfileLimits(default_max_rows=5, max_rows=10, command_timeout_seconds=1),
            ),
        ],
        default_profile="default",
    )


@pytest.fixture
def engine_spy():
    return CountingEngineFactory()


@pytest.fixture
def executor(profile_table, engine_spy):
    return BoundedExecutor(profile_table, engine_factory=engine_spy)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove sqlwarden and legacy variables, and forget any published table."""
    for key in list(os.environ):
        if key.startswith(("SQLWARDEN_", "MCP_SQL_")):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(sqlwarden_config, "_profile_table", None)
    return monkeypatch


# Markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "mcp: marks tests related to MCP functionality")
