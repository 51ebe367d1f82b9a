"""SQL reads and writes for the booking tables.

Every function takes an open cursor from ``database.get_db`` so the caller
decides the transaction boundary.
"""
from typing import Optional

from constants import ROLE_ADMIN
from models import Booking, PriorityQueueEntry, Profile, SystemState

_PROFILE_COLUMNS = "user_id::text AS user_id, name, contact, contact_method, gender, level, created_at"
_BOOKING_COLUMNS = (
    "id, user_id::text AS user_id, player1_name, player1_level, player1_team, "
    "player2_name, player2_level, player2_team, created_at"
)


# ============ PROFILES ============

def create_profile(cursor, user_id: str, name: str, contact: str, contact_method: str,
                   gender: Optional[str], level: Optional[str]) -> Profile:
    cursor.execute(f"""
        INSERT INTO profiles (user_id, name, contact, contact_method, gender, level)
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING {_PROFILE_COLUMNS}
    """, (user_id, name, contact, contact_method, gender, level))
    return Profile(**dict(cursor.fetchone()))


def get_profile(cursor, user_id: str) -> Optional[Profile]:
    cursor.execute(f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE user_id::text = %s", (user_id,))
    row = cursor.fetchone()
    return Profile(**dict(row)) if row else None


def find_profile_by_contact(cursor, contact: str) -> Optional[Profile]:
    cursor.execute(f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE contact = %s", (contact,))
    row = cursor.fetchone()
    return Profile(**dict(row)) if row else None


def update_profile(cursor, user_id: str, name: str, contact: str,
                   gender: Optional[str], level: Optional[str]) -> Optional[Profile]:
    cursor.execute(f"""
        UPDATE profiles SET name = %s, contact = %s, gender = %s, level = %s
        WHERE user_id::text = %s
        RETURNING {_PROFILE_COLUMNS}
    """, (name, contact, gender, level, user_id))
    row = cursor.fetchone()
    return Profile(**dict(row)) if row else None


def list_profiles(cursor) -> list[Profile]:
    cursor.execute(f"SELECT {_PROFILE_COLUMNS} FROM profiles ORDER BY name")
    return [Profile(**dict(row)) for row in cursor.fetchall()]


def is_admin(cursor, user_id: str) -> bool:
    cursor.execute(
        "SELECT 1 FROM user_roles WHERE user_id::text = %s AND role = %s",
        (user_id, ROLE_ADMIN)
    )
    return cursor.fetchone() is not None


# ============ SYSTEM STATE ============

def get_system_state(cursor, for_update: bool = False) -> Optional[SystemState]:
    query = """
        SELECT is_priority_mode, is_open_for_all, priority_timer_started_at,
               priority_timer_duration, updated_at
        FROM system_state WHERE id = 1
    """
    if for_update:
        query += " FOR UPDATE"
    cursor.execute(query)
    row = cursor.fetchone()
    return SystemState(**dict(row)) if row else None


def update_system_state(cursor, is_priority_mode: bool, is_open_for_all: bool,
                        priority_timer_duration: Optional[int]) -> SystemState:
    cursor.execute("""
        UPDATE system_state
        SET is_priority_mode = %s,
            is_open_for_all = %s,
            priority_timer_duration = COALESCE(%s, priority_timer_duration),
            updated_at = CURRENT_TIMESTAMP
        WHERE id = 1
        RETURNING is_priority_mode, is_open_for_all, priority_timer_started_at,
                  priority_timer_duration, updated_at
    """, (is_priority_mode, is_open_for_all, priority_timer_duration))
    return SystemState(**dict(cursor.fetchone()))


def start_priority_timer(cursor, duration: Optional[int]) -> SystemState:
    cursor.execute("""
        UPDATE system_state
        SET priority_timer_started_at = CURRENT_TIMESTAMP,
            priority_timer_duration = COALESCE(%s, priority_timer_duration),
            updated_at = CURRENT_TIMESTAMP
        WHERE id = 1
        RETURNING is_priority_mode, is_open_for_all, priority_timer_started_at,
                  priority_timer_duration, updated_at
    """, (duration,))
    return SystemState(**dict(cursor.fetchone()))


def stop_priority_timer(cursor) -> SystemState:
    cursor.execute("""
        UPDATE system_state
        SET priority_timer_started_at = NULL, updated_at = CURRENT_TIMESTAMP
        WHERE id = 1
        RETURNING is_priority_mode, is_open_for_all, priority_timer_started_at,
                  priority_timer_duration, updated_at
    """)
    return SystemState(**dict(cursor.fetchone()))


# ============ PRIORITY QUEUE ============

def get_priority_queue(cursor, lock: bool = False) -> list[PriorityQueueEntry]:
    """Queue in position order. ``lock`` serializes concurrent joins until commit."""
    if lock:
        cursor.execute("LOCK TABLE priority_queue IN SHARE ROW EXCLUSIVE MODE")
    cursor.execute("""
        SELECT q.user_id::text AS user_id, q.position, q.created_at, p.name
        FROM priority_queue q
        JOIN profiles p ON p.user_id = q.user_id
        ORDER BY q.position
    """)
    return [PriorityQueueEntry(**dict(row)) for row in cursor.fetchall()]


def add_to_queue(cursor, user_id: str) -> PriorityQueueEntry:
    """Append at the tail. Call after get_priority_queue(lock=True)."""
    cursor.execute("""
        INSERT INTO priority_queue (user_id, position)
        SELECT %s, COALESCE(MAX(position), 0) + 1 FROM priority_queue
        RETURNING user_id::text AS user_id, position, created_at
    """, (user_id,))
    return PriorityQueueEntry(**dict(cursor.fetchone()))


def remove_from_queue(cursor, user_id: str) -> bool:
    cursor.execute("DELETE FROM priority_queue WHERE user_id::text = %s", (user_id,))
    if cursor.rowcount == 0:
        return False
    _compact_queue(cursor)
    return True


def reorder_queue(cursor, user_ids: list[str]) -> None:
    for position, user_id in enumerate(user_ids, start=1):
        cursor.execute(
            "UPDATE priority_queue SET position = %s WHERE user_id::text = %s",
            (position, user_id)
        )


def clear_queue(cursor) -> int:
    cursor.execute("DELETE FROM priority_queue")
    return cursor.rowcount


def _compact_queue(cursor) -> None:
    cursor.execute("""
        UPDATE priority_queue q
        SET position = ranked.new_position
        FROM (
            SELECT id, ROW_NUMBER() OVER (ORDER BY position) AS new_position
            FROM priority_queue
        ) ranked
        WHERE q.id = ranked.id AND q.position <> ranked.new_position
    """)


# ============ BOOKINGS ============

def get_bookings(cursor) -> list[Booking]:
    cursor.execute(f"SELECT {_BOOKING_COLUMNS} FROM bookings ORDER BY created_at DESC")
    return [Booking(**dict(row)) for row in cursor.fetchall()]


def get_booking(cursor, booking_id: int) -> Optional[Booking]:
    cursor.execute(f"SELECT {_BOOKING_COLUMNS} FROM bookings WHERE id = %s", (booking_id,))
    row = cursor.fetchone()
    return Booking(**dict(row)) if row else None


def insert_booking(cursor, user_id: str, player1_name: str, player1_level: Optional[str],
                   player1_team: Optional[str], player2_name: Optional[str],
                   player2_level: Optional[str], player2_team: Optional[str]) -> Booking:
    cursor.execute(f"""
        INSERT INTO bookings (user_id, player1_name, player1_level, player1_team,
                              player2_name, player2_level, player2_team)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING {_BOOKING_COLUMNS}
    """, (user_id, player1_name, player1_level, player1_team, player2_name, player2_level, player2_team))
    return Booking(**dict(cursor.fetchone()))


def delete_booking(cursor, booking_id: int) -> bool:
    cursor.execute("DELETE FROM bookings WHERE id = %s", (booking_id,))
    return cursor.rowcount > 0
