import re
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from constants import (
    Level, Gender, ContactMethod, PROFILE_LEVELS, PROFILE_GENDERS,
    PLAYER_NAME_MAX_LENGTH, PROFILE_NAME_MAX_LENGTH, PRIORITY_QUEUE_LIMIT, PLAYERS_PER_TEAM
)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^\+?\d{8,15}$")


def normalize_contact(value: str, method: ContactMethod) -> str:
    """Validate a contact value for the configured method and return its canonical form."""
    value = (value or "").strip()
    if method == ContactMethod.EMAIL:
        value = value.lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email address")
        return value
    digits = re.sub(r"[\s().-]", "", value)
    if not PHONE_PATTERN.match(digits):
        raise ValueError("Invalid phone number")
    return digits


def profile_option(value, allowed):
    """``não informado`` is a display fallback, never a stored profile value."""
    if value is not None and value not in allowed:
        raise ValueError(f"Must be one of: {', '.join(option.value for option in allowed)}")
    return value


# ============ DOMAIN ============

class Profile(BaseModel):
    user_id: str
    name: str
    contact: str
    contact_method: ContactMethod
    gender: Optional[Gender] = None
    level: Optional[Level] = None
    created_at: Optional[datetime] = None


class SystemState(BaseModel):
    is_priority_mode: bool = False
    is_open_for_all: bool = False
    priority_timer_started_at: Optional[datetime] = None
    priority_timer_duration: int = 0
    updated_at: Optional[datetime] = None


class PriorityQueueEntry(BaseModel):
    user_id: str
    position: int
    name: Optional[str] = None
    created_at: Optional[datetime] = None


class Booking(BaseModel):
    id: int
    user_id: str
    player1_name: str
    player1_level: Optional[str] = None
    player1_team: Optional[str] = None
    player2_name: Optional[str] = None
    player2_level: Optional[str] = None
    player2_team: Optional[str] = None
    created_at: Optional[datetime] = None


class TeamPlayer(BaseModel):
    name: str
    level: str
    gender: str


class GeneratedTeam(BaseModel):
    id: int
    players: list[TeamPlayer] = Field(default_factory=list)


# ============ REQUESTS ============

class SignUpRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=PROFILE_NAME_MAX_LENGTH)
    contact: str = Field(..., min_length=1, max_length=120)
    gender: Optional[Gender] = None
    level: Optional[Level] = None

    @field_validator('name')
    @classmethod
    def name_cleaned(cls, v):
        if not v.strip():
            raise ValueError("Name must not be blank")
        return v.strip()

    @field_validator('gender')
    @classmethod
    def gender_stored(cls, v):
        return profile_option(v, PROFILE_GENDERS)

    @field_validator('level')
    @classmethod
    def level_stored(cls, v):
        return profile_option(v, PROFILE_LEVELS)


class SignInRequest(BaseModel):
    contact: str = Field(..., min_length=1, max_length=120)


class ProfileUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=PROFILE_NAME_MAX_LENGTH)
    contact: str = Field(..., min_length=1, max_length=120)
    gender: Optional[Gender] = None
    level: Optional[Level] = None

    @field_validator('name')
    @classmethod
    def name_cleaned(cls, v):
        if not v.strip():
            raise ValueError("Name must not be blank")
        return v.strip()

    @field_validator('gender')
    @classmethod
    def gender_stored(cls, v):
        return profile_option(v, PROFILE_GENDERS)

    @field_validator('level')
    @classmethod
    def level_stored(cls, v):
        return profile_option(v, PROFILE_LEVELS)


class BookingCreate(BaseModel):
    """Own booking. Player 1 defaults to the caller's profile."""
    player1_name: Optional[str] = Field(default=None, max_length=PLAYER_NAME_MAX_LENGTH)
    player1_level: Optional[Level] = None
    player1_team: Optional[Gender] = None
    player2_name: Optional[str] = Field(default=None, max_length=PLAYER_NAME_MAX_LENGTH)
    player2_level: Optional[Level] = None
    player2_team: Optional[Gender] = None

    @field_validator('player1_name', 'player2_name')
    @classmethod
    def blank_to_none(cls, v):
        if v is None or not v.strip():
            return None
        return v.strip()

    @model_validator(mode='after')
    def drop_partner_attributes(self):
        if self.player2_name is None:
            self.player2_level = None
            self.player2_team = None
        return self


class ManualBookingCreate(BookingCreate):
    user_id: str = Field(..., min_length=1)


class SystemStateUpdate(BaseModel):
    is_priority_mode: bool
    is_open_for_all: bool
    priority_timer_duration: Optional[int] = Field(default=None, ge=1, le=24 * 60 * 60)


class TimerStart(BaseModel):
    duration: Optional[int] = Field(default=None, ge=1, le=24 * 60 * 60)


class QueueReorder(BaseModel):
    user_ids: list[str] = Field(..., min_length=1, max_length=PRIORITY_QUEUE_LIMIT)

    @field_validator('user_ids')
    @classmethod
    def unique_ids(cls, v):
        if len(set(v)) != len(v):
            raise ValueError("user_ids must not repeat")
        return v


class TeamGenerateRequest(BaseModel):
    players_per_team: int = Field(default=PLAYERS_PER_TEAM, ge=2, le=12)


# ============ RESPONSES ============

class EligibilityResponse(BaseModel):
    can_book: bool
    reason: Optional[str] = None
    remaining_seconds: int = 0


class StateResponse(BaseModel):
    system_state: Optional[SystemState]
    priority_queue: list[PriorityQueueEntry]
    bookings: list[Booking]
    remaining_seconds: int


class BookingGroup(BaseModel):
    team: str
    level: str
    bookings: list[Booking]


class TeamsResponse(BaseModel):
    teams: list[GeneratedTeam]
    total_players: int
    message: str
    share_url: str
