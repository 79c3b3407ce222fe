"""
Shared fixtures for unit tests.

The target database is a real SQLite file; LLM, embedding and
similarity-index collaborators come from fakes.py.
"""

import sqlite3

import pytest

from text2sql.config import AgentConfig, DatabaseConfig, RetrievalConfig, SchemaIndexingConfig
from text2sql.config_constants import DatabaseProvider
from text2sql.infrastructure.adapters.sqlite import SqliteAdapter

from fakes import FakeEmbeddingClient, FakeVectorRepository


SHOP_SCHEMA = """
CREATE TABLE customers (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    city TEXT
);
CREATE TABLE products (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    price REAL NOT NULL
);
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    product_id INTEGER REFERENCES products(id),
    total_amount REAL,
    status TEXT
);
INSERT INTO customers (id, name, email, city) VALUES
    (1, 'An', 'an@example.com', 'Hà Nội'),
    (2, 'Bình', 'binh@example.com', 'Đà Nẵng'),
    (3, 'Chi', NULL, 'Hà Nội');
INSERT INTO products (id, name, price) VALUES (1, 'Phở', 50000), (2, 'Cà phê', 30000);
INSERT INTO orders (id, customer_id, product_id, total_amount, status) VALUES
    (1, 1, 1, 100000, 'paid'),
    (2, 1, 2, 30000, 'paid'),
    (3, 2, 1, 50000, 'cancelled');
"""


@pytest.fixture
def shop_db_path(tmp_path):
    """SQLite database with customers, products and orders."""
    path = tmp_path / "shop.db"
    conn = sqlite3.connect(path)
    try:
        conn.executescript(SHOP_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def sqlite_config(shop_db_path):
    return DatabaseConfig(
        provider=DatabaseProvider.SQLITE,
        connection_string=f"sqlite:///{shop_db_path}",
        command_timeout_seconds=5,
        max_retry_attempts=2,
        retry_backoff_seconds=0.5,
    )


@pytest.fixture
def sqlite_adapter(sqlite_config):
    return SqliteAdapter(sqlite_config)


@pytest.fixture
def agent_config():
    return AgentConfig()


@pytest.fixture
def retrieval_config():
    return RetrievalConfig(top_k=10, minimum_score=0.3, max_context_tables=5)


@pytest.fixture
def indexing_config():
    return SchemaIndexingConfig(batch_size=4, inter_call_delay_seconds=0.25)


@pytest.fixture
def fake_embeddings():
    return FakeEmbeddingClient()


@pytest.fixture
def fake_vectors():
    return FakeVectorRepository()
