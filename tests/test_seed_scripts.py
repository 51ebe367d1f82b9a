"""Tests for the seed data export/import helpers."""

import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

from export_prod_data import serialize, serialize_rows
from import_seed_data import import_rows


class TestSerialize:
    def test_plain_values_pass_through(self):
        assert serialize(None) is None
        assert serialize(True) is True
        assert serialize(3) == 3
        assert serialize("Ana") == "Ana"

    def test_datetime_and_uuid(self):
        stamp = datetime(2025, 6, 14, 18, 0, tzinfo=timezone.utc)
        user_id = uuid.UUID("12345678-1234-5678-1234-567812345678")
        rows = serialize_rows([{"user_id": user_id, "created_at": stamp, "player2_name": None}])
        assert rows == [{
            "user_id": "12345678-1234-5678-1234-567812345678",
            "created_at": "2025-06-14T18:00:00+00:00",
            "player2_name": None,
        }]


class TestImportRows:
    def test_counts_and_queue_positions(self):
        cursor = MagicMock()
        data = {
            "profiles": [{"user_id": "u1", "name": "Ana", "contact": "ana@example.com"}],
            "user_roles": [{"user_id": "u1", "role": "admin"}],
            "system_state": [{"is_priority_mode": True, "priority_timer_duration": 120}],
            "priority_queue": [{"user_id": "u2", "position": 7}, {"user_id": "u1", "position": 3}],
            "bookings": [{"user_id": "u1", "player1_name": "Ana"}],
        }

        counts = import_rows(cursor, data)

        assert counts == {"profiles": 1, "user_roles": 1, "system_state": 1, "priority_queue": 2, "bookings": 1}
        queue_inserts = [
            c.args[1] for c in cursor.execute.call_args_list
            if "INSERT INTO priority_queue" in c.args[0]
        ]
        assert [(params[0], params[1]) for params in queue_inserts] == [("u1", 1), ("u2", 2)]

    def test_empty_file(self):
        cursor = MagicMock()
        assert import_rows(cursor, {}) == {
            "profiles": 0, "user_roles": 0, "system_state": 0, "priority_queue": 0, "bookings": 0,
        }
        cursor.execute.assert_not_called()

    def test_missing_created_at_keeps_column_default(self):
        cursor = MagicMock()
        import_rows(cursor, {
            "profiles": [{"user_id": "u1", "name": "Ana", "contact": "ana@example.com"}],
            "priority_queue": [{"user_id": "u1", "position": 1}],
            "bookings": [{"user_id": "u1", "player1_name": "Ana"}],
        })

        inserts = [call.args for call in cursor.execute.call_args_list if "INSERT" in call.args[0]]
        assert len(inserts) == 3
        for sql, params in inserts:
            assert "COALESCE(%s, CURRENT_TIMESTAMP)" in sql
            assert params[-1] is None
