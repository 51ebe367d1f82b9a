# backend/constants.py
"""Application constants - single source of truth for configuration values."""
from enum import Enum


NOT_INFORMED = "não informado"


class Level(str, Enum):
    INICIANTE = "iniciante"
    INTERMEDIARIO = "intermediario"
    AVANCADO = "avancado"
    NOT_INFORMED = NOT_INFORMED

    @classmethod
    def coerce(cls, value) -> "Level":
        """Map any stored value onto a level, unknown values become NOT_INFORMED."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower()) if value else cls.NOT_INFORMED
        except ValueError:
            return cls.NOT_INFORMED


class Gender(str, Enum):
    MASCULINO = "masculino"
    FEMININO = "feminino"
    MISTO = "misto"
    NOT_INFORMED = NOT_INFORMED

    @classmethod
    def coerce(cls, value) -> "Gender":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower()) if value else cls.NOT_INFORMED
        except ValueError:
            return cls.NOT_INFORMED


class ContactMethod(str, Enum):
    EMAIL = "email"
    PHONE = "phone"


# Values a user can pick on a form (the sentinel is never chosen)
PROFILE_LEVELS = [Level.INICIANTE, Level.INTERMEDIARIO, Level.AVANCADO]
PROFILE_GENDERS = [Gender.MASCULINO, Gender.FEMININO, Gender.MISTO]
BOOKING_GENDERS = [Gender.MASCULINO, Gender.FEMININO]

# Team allocation: strongest bucket first, catch-all last
ALLOCATION_LEVEL_ORDER = [Level.AVANCADO, Level.INTERMEDIARIO, Level.INICIANTE, Level.NOT_INFORMED]
ALLOCATION_GENDER_ORDER = [Gender.MASCULINO, Gender.FEMININO, Gender.NOT_INFORMED]

# Booking list grouping order
GROUP_GENDER_ORDER = [Gender.MASCULINO, Gender.FEMININO, Gender.NOT_INFORMED]
GROUP_LEVEL_ORDER = [Level.INICIANTE, Level.INTERMEDIARIO, Level.AVANCADO, Level.NOT_INFORMED]

PLAYERS_PER_TEAM = 6
MIN_BOOKINGS_FOR_TEAMS = 12
PRIORITY_QUEUE_LIMIT = 12

PLAYER_NAME_MAX_LENGTH = 60
PROFILE_NAME_MAX_LENGTH = 80

ROLE_ADMIN = "admin"

# Tables whose row changes are pushed to websocket clients
REALTIME_TABLES = ["system_state", "priority_queue", "bookings", "profiles"]
REALTIME_CHANNEL = "table_changes"

GENDER_EMOJI = {
    Gender.MASCULINO: "👨",
    Gender.FEMININO: "👩",
}
GENDER_EMOJI_DEFAULT = "❓"
