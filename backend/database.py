import logging
import psycopg2
from psycopg2.extras import RealDictCursor
from contextlib import contextmanager
from config import get_db_config, PRIORITY_TIMER_DEFAULT_SECONDS
from constants import REALTIME_TABLES, REALTIME_CHANNEL

logger = logging.getLogger(__name__)


def connect(**overrides):
    """Open a raw connection using DATABASE_URL."""
    config = get_db_config()
    return psycopg2.connect(
        host=config["host"],
        port=config["port"],
        database=config["database"],
        user=config["user"],
        password=config["password"],
        cursor_factory=RealDictCursor,
        **overrides
    )


@contextmanager
def get_db():
    """Get a database connection with automatic commit/rollback."""
    conn = connect()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db():
    """Initialize database schema."""
    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS profiles (
                user_id UUID PRIMARY KEY,
                name TEXT NOT NULL,
                contact TEXT NOT NULL UNIQUE,
                contact_method TEXT NOT NULL CHECK(contact_method IN ('email', 'phone')),
                gender TEXT CHECK(gender IN ('masculino', 'feminino', 'misto')),
                level TEXT CHECK(level IN ('iniciante', 'intermediario', 'avancado')),
                created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS user_roles (
                user_id UUID NOT NULL REFERENCES profiles(user_id) ON DELETE CASCADE,
                role TEXT NOT NULL,
                PRIMARY KEY (user_id, role)
            )
        """)

        # Singleton: the only allowed id is 1
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS system_state (
                id INTEGER PRIMARY KEY DEFAULT 1 CHECK(id = 1),
                is_priority_mode BOOLEAN NOT NULL DEFAULT false,
                is_open_for_all BOOLEAN NOT NULL DEFAULT false,
                priority_timer_started_at TIMESTAMPTZ,
                priority_timer_duration INTEGER NOT NULL DEFAULT %s CHECK(priority_timer_duration > 0),
                updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
            )
        """, (PRIORITY_TIMER_DEFAULT_SECONDS,))
        cursor.execute("INSERT INTO system_state (id) VALUES (1) ON CONFLICT (id) DO NOTHING")

        # Positions are deferrable so a reorder can swap them inside one transaction
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS priority_queue (
                id SERIAL PRIMARY KEY,
                user_id UUID NOT NULL UNIQUE REFERENCES profiles(user_id) ON DELETE CASCADE,
                position INTEGER NOT NULL CHECK(position >= 1),
                created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                CONSTRAINT priority_queue_position_key UNIQUE (position) DEFERRABLE INITIALLY DEFERRED
            )
        """)

        # UNIQUE(user_id) keeps "one active booking per user" race-free
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS bookings (
                id SERIAL PRIMARY KEY,
                user_id UUID NOT NULL UNIQUE REFERENCES profiles(user_id) ON DELETE CASCADE,
                player1_name TEXT NOT NULL,
                player1_level TEXT,
                player1_team TEXT,
                player2_name TEXT,
                player2_level TEXT,
                player2_team TEXT,
                created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE OR REPLACE FUNCTION notify_table_change()
            RETURNS TRIGGER AS $$
            BEGIN
                PERFORM pg_notify('%s', TG_TABLE_NAME);
                RETURN NULL;
            END;
            $$ LANGUAGE plpgsql;
        """ % REALTIME_CHANNEL)

        for table in REALTIME_TABLES:
            cursor.execute(f"""
                DROP TRIGGER IF EXISTS {table}_change_trigger ON {table};
                CREATE TRIGGER {table}_change_trigger
                AFTER INSERT OR UPDATE OR DELETE ON {table}
                FOR EACH STATEMENT
                EXECUTE FUNCTION notify_table_change();
            """)

        conn.commit()
    logger.info("Database schema ready", extra={"tables": REALTIME_TABLES + ["user_roles"]})


if __name__ == "__main__":
    init_db()
    print("Database initialized successfully")
