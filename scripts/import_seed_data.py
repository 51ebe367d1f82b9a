#!/usr/bin/env python3
"""
Import seed data into local database for testing.

Usage:
    python scripts/import_seed_data.py

Reads from data/seed_data.json and imports into local database.
Requires DATABASE_URL to be set in .env file.
"""

import json
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from database import get_db, init_db


def import_rows(cursor, data: dict) -> dict:
    """Upsert every seed table. Returns the row count per table."""
    counts = {}

    profiles = data.get("profiles", [])
    for profile in profiles:
        cursor.execute("""
            INSERT INTO profiles (user_id, name, contact, contact_method, gender, level, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, COALESCE(%s, CURRENT_TIMESTAMP))
            ON CONFLICT (user_id) DO UPDATE SET
                name = EXCLUDED.name,
                gender = EXCLUDED.gender,
                level = EXCLUDED.level
        """, (
            profile["user_id"],
            profile["name"],
            profile["contact"],
            profile.get("contact_method", "email"),
            profile.get("gender"),
            profile.get("level"),
            profile.get("created_at")
        ))
    counts["profiles"] = len(profiles)

    roles = data.get("user_roles", [])
    for role in roles:
        cursor.execute("""
            INSERT INTO user_roles (user_id, role)
            VALUES (%s, %s)
            ON CONFLICT (user_id, role) DO NOTHING
        """, (role["user_id"], role["role"]))
    counts["user_roles"] = len(roles)

    states = data.get("system_state", [])
    for state in states[:1]:
        cursor.execute("""
            UPDATE system_state SET
                is_priority_mode = %s,
                is_open_for_all = %s,
                priority_timer_started_at = %s,
                priority_timer_duration = %s
            WHERE id = 1
        """, (
            state.get("is_priority_mode", False),
            state.get("is_open_for_all", False),
            state.get("priority_timer_started_at"),
            state.get("priority_timer_duration", 300)
        ))
    counts["system_state"] = min(len(states), 1)

    queue = data.get("priority_queue", [])
    if queue:
        cursor.execute("DELETE FROM priority_queue")
    for position, entry in enumerate(sorted(queue, key=lambda e: e["position"]), start=1):
        cursor.execute("""
            INSERT INTO priority_queue (user_id, position, created_at)
            VALUES (%s, %s, COALESCE(%s, CURRENT_TIMESTAMP))
        """, (entry["user_id"], position, entry.get("created_at")))
    counts["priority_queue"] = len(queue)

    bookings = data.get("bookings", [])
    for booking in bookings:
        cursor.execute("""
            INSERT INTO bookings (user_id, player1_name, player1_level, player1_team,
                                  player2_name, player2_level, player2_team, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, COALESCE(%s, CURRENT_TIMESTAMP))
            ON CONFLICT (user_id) DO NOTHING
        """, (
            booking["user_id"],
            booking["player1_name"],
            booking.get("player1_level"),
            booking.get("player1_team"),
            booking.get("player2_name"),
            booking.get("player2_level"),
            booking.get("player2_team"),
            booking.get("created_at")
        ))
    counts["bookings"] = len(bookings)

    return counts


def import_data():
    """Import seed data from JSON file."""
    seed_file = Path(__file__).parent.parent / "data" / "seed_data.json"

    if not seed_file.exists():
        print(f"Error: {seed_file} not found")
        print("Run export_prod_data.py first to create seed data")
        sys.exit(1)

    with open(seed_file) as f:
        data = json.load(f)

    print(f"Loading seed data from {seed_file}")

    # Initialize database schema
    print("\nInitializing database schema...")
    init_db()

    with get_db() as conn:
        counts = import_rows(conn.cursor(), data)

    for table, count in counts.items():
        print(f"Imported {count} {table} rows")
    print("\nSeed data imported successfully!")


if __name__ == "__main__":
    import_data()
