#!/usr/bin/env python
"""
Create a sample shop.sqlite database for trying the server locally.

Run with: python -m scripts.create_sample_db
Then:     MCP_SQL_CONNECTION_STRING=sqlite:///data/shop.sqlite sqlwarden
"""

import sqlite3
import random
from datetime import datetime, timedelta
from pathlib import Path

def create_sample_database():
    db_path = Path(__file__).resolve().parents[1] / "data" / "shop.sqlite"
    db_path.parent.mkdir(parents=True, exist_ok=True)

    print(f"Creating sample database at: {db_path}")

    conn = sqlite3.connect(str(db_path))
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS customers (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT,
            country TEXT NOT NULL
        )
    """)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS orders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_id INTEGER NOT NULL REFERENCES customers(id),
            ordered_at TEXT NOT NULL,
            amount REAL NOT NULL
        )
    """)

    # Clear existing data
    cursor.execute("DELETE FROM orders")
    cursor.execute("DELETE FROM customers")

    countries = ["US", "DE", "FR", "JP", "BR"]
    customers = [
        # every tenth customer has no email, to exercise NULL handling
        (i, f"Customer {i}", None if i % 10 == 0 else f"customer{i}@example.com", random.choice(countries))
        for i in range(1, 501)
    ]
    cursor.executemany(
        "INSERT INTO customers (id, name, email, country) VALUES (?, ?, ?, ?)",
        customers,
    )

    print("Generating sample orders...")

    start = datetime(2024, 1, 1)
    orders = []
    for _ in range(20_000):
        ordered_at = start + timedelta(minutes=random.randint(0, 365 * 24 * 60))
        orders.append((
            random.randint(1, len(customers)),
            ordered_at.strftime("%Y-%m-%d %H:%M:%S"),
            round(random.uniform(5, 500), 2),
        ))

    cursor.executemany(
        "INSERT INTO orders (customer_id, ordered_at, amount) VALUES (?, ?, ?)",
        orders,
    )

    conn.commit()

    # Verify
    cursor.execute("SELECT COUNT(*) FROM orders")
    count = cursor.fetchone()[0]

    cursor.execute("SELECT MIN(ordered_at), MAX(ordered_at) FROM orders")
    min_date, max_date = cursor.fetchone()

    conn.close()

    print(f"✅ Created {len(customers):,} customers and {count:,} orders")
    print(f"   Date range: {min_date} to {max_date}")
    print(f"   Database: {db_path}")


if __name__ == "__main__":
    create_sample_database()
