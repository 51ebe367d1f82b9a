import asyncio
import logging
import uuid
from typing import Optional
from fastapi import FastAPI, HTTPException, Request, Header, WebSocket, WebSocketDisconnect, Query, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from psycopg2.errors import UniqueViolation
from config import CORS_ORIGINS, PORT, HOST, DEBUG, ENVIRONMENT, LOG_LEVEL, CONTACT_METHOD, REALTIME_LISTEN
from database import connect, get_db, init_db
from eligibility import BlockReason, booking_block_reason, priority_time_remaining
from logging_config import configure_logging, RequestLoggingMiddleware
from models import (
    Profile, Booking, PriorityQueueEntry, SystemState,
    SignUpRequest, SignInRequest, ProfileUpdate,
    BookingCreate, ManualBookingCreate,
    SystemStateUpdate, TimerStart, QueueReorder, TeamGenerateRequest,
    EligibilityResponse, StateResponse, TeamsResponse,
    normalize_contact
)
from constants import (
    ContactMethod, PROFILE_LEVELS, PROFILE_GENDERS, BOOKING_GENDERS,
    PLAYERS_PER_TEAM, MIN_BOOKINGS_FOR_TEAMS, PRIORITY_QUEUE_LIMIT, NOT_INFORMED
)
from realtime import notifier, PgChangeListener, stream_changes
from teams import flatten_players, generate_teams, format_teams_message, whatsapp_share_url, group_bookings
import store

configure_logging(service="court-booking-api", environment=ENVIRONMENT, log_level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Court Booking API",
    version="1.0.0",
    docs_url="/api/docs" if DEBUG else None,
    redoc_url="/api/redoc" if DEBUG else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


class BookingNotAllowed(HTTPException):
    def __init__(self, reason: BlockReason):
        status_code = 409 if reason == BlockReason.ALREADY_BOOKED else 403
        super().__init__(status_code=status_code, detail=BLOCK_MESSAGES[reason])
        self.reason = reason


BLOCK_MESSAGES = {
    BlockReason.NO_STATE: "Booking system is not configured",
    BlockReason.NOT_SIGNED_IN: "Sign in to book",
    BlockReason.ALREADY_BOOKED: "You already have an active booking",
    BlockReason.SYSTEM_CLOSED: "Bookings are paused until an admin opens them",
    BlockReason.NOT_IN_QUEUE: "You are not in the priority queue",
    BlockReason.TIMER_NOT_STARTED: "The priority window has not started yet",
    BlockReason.PRIORITY_TIME_OVER: "The priority window is over",
}


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    content = {"error": True, "status_code": exc.status_code, "message": exc.detail, "path": str(request.url.path)}
    reason = getattr(exc, "reason", None)
    if reason is not None:
        content["reason"] = reason.value
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", extra={"path": str(request.url.path)})
    return JSONResponse(
        status_code=500,
        content={"error": True, "status_code": 500, "message": "Internal server error", "path": str(request.url.path)}
    )


_listener: Optional[PgChangeListener] = None


@app.on_event("startup")
def startup():
    global _listener
    init_db()
    if REALTIME_LISTEN:
        _listener = PgChangeListener(notifier, connect)
        _listener.start()


@app.on_event("shutdown")
def shutdown():
    if _listener is not None:
        _listener.stop(timeout=_listener.poll_interval * 2)


def announce(*tables: str) -> None:
    """Push a change signal for rows written by this process.

    With the Postgres listener running the table triggers already do this.
    """
    if REALTIME_LISTEN:
        return
    for table in tables:
        notifier.publish(table)


def require_user(cursor, x_user_token: Optional[str]) -> Profile:
    if not x_user_token:
        raise HTTPException(status_code=401, detail="Missing X-User-Token header")
    profile = store.get_profile(cursor, x_user_token)
    if not profile:
        raise HTTPException(status_code=401, detail="Unknown user")
    return profile


def require_admin(cursor, x_user_token: Optional[str]) -> Profile:
    profile = require_user(cursor, x_user_token)
    if not store.is_admin(cursor, profile.user_id):
        raise HTTPException(status_code=403, detail="Admin only")
    return profile


def contact_or_400(value: str) -> str:
    try:
        return normalize_contact(value, ContactMethod(CONTACT_METHOD))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _value(option) -> Optional[str]:
    return option.value if option is not None else None


# ============ AUTH & PROFILE ============

@app.post("/api/auth/signup", response_model=Profile)
def sign_up(request: SignUpRequest):
    contact = contact_or_400(request.contact)
    with get_db() as conn:
        cursor = conn.cursor()
        try:
            profile = store.create_profile(
                cursor, str(uuid.uuid4()), request.name, contact, CONTACT_METHOD,
                _value(request.gender), _value(request.level)
            )
        except UniqueViolation:
            raise HTTPException(status_code=409, detail="Contact already registered, sign in instead")
    logger.info("Profile created", extra={"user_id": profile.user_id})
    announce("profiles")
    return profile


@app.post("/api/auth/signin", response_model=Profile)
def sign_in(request: SignInRequest):
    contact = contact_or_400(request.contact)
    with get_db() as conn:
        cursor = conn.cursor()
        profile = store.find_profile_by_contact(cursor, contact)
        if not profile:
            raise HTTPException(status_code=404, detail="Contact not found, sign up first")
        return profile


@app.get("/api/profile", response_model=Profile)
def get_profile(x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        return require_user(conn.cursor(), x_user_token)


@app.put("/api/profile", response_model=Profile)
def update_profile(update: ProfileUpdate, x_user_token: Optional[str] = Header(None)):
    contact = contact_or_400(update.contact)
    with get_db() as conn:
        cursor = conn.cursor()
        profile = require_user(cursor, x_user_token)
        try:
            updated = store.update_profile(
                cursor, profile.user_id, update.name, contact, _value(update.gender), _value(update.level)
            )
        except UniqueViolation:
            raise HTTPException(status_code=409, detail="Contact already in use")
    announce("profiles")
    return updated


# ============ STATE & ELIGIBILITY ============

@app.get("/api/state", response_model=StateResponse)
def get_state(x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        require_user(cursor, x_user_token)
        system_state = store.get_system_state(cursor)
        return StateResponse(
            system_state=system_state,
            priority_queue=store.get_priority_queue(cursor),
            bookings=store.get_bookings(cursor),
            remaining_seconds=priority_time_remaining(system_state),
        )


@app.get("/api/eligibility", response_model=EligibilityResponse)
def get_eligibility(x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        profile = require_user(cursor, x_user_token)
        system_state = store.get_system_state(cursor)
        reason = booking_block_reason(
            system_state, store.get_priority_queue(cursor), profile.user_id, store.get_bookings(cursor)
        )
        return EligibilityResponse(
            can_book=reason is None,
            reason=_value(reason),
            remaining_seconds=priority_time_remaining(system_state),
        )


# ============ PRIORITY QUEUE ============

@app.post("/api/priority-queue", response_model=PriorityQueueEntry)
def join_queue(x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        profile = require_user(cursor, x_user_token)
        queue = store.get_priority_queue(cursor, lock=True)
        if any(entry.user_id == profile.user_id for entry in queue):
            raise HTTPException(status_code=409, detail="Already in the priority queue")
        if len(queue) >= PRIORITY_QUEUE_LIMIT:
            raise HTTPException(status_code=409, detail="Priority queue is full")
        try:
            entry = store.add_to_queue(cursor, profile.user_id)
        except UniqueViolation:
            raise HTTPException(status_code=409, detail="Already in the priority queue")
    entry.name = profile.name
    logger.info("Joined priority queue", extra={"user_id": profile.user_id, "position": entry.position})
    announce("priority_queue")
    return entry


@app.delete("/api/priority-queue")
def leave_queue(x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        profile = require_user(cursor, x_user_token)
        if not store.remove_from_queue(cursor, profile.user_id):
            raise HTTPException(status_code=404, detail="Not in the priority queue")
    logger.info("Left priority queue", extra={"user_id": profile.user_id})
    announce("priority_queue")
    return {"message": "Left the priority queue"}


# ============ BOOKINGS ============

@app.get("/api/bookings")
def list_bookings(grouped: bool = False, x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        require_user(cursor, x_user_token)
        bookings = store.get_bookings(cursor)
    if grouped:
        return [group.model_dump(mode="json") for group in group_bookings(bookings)]
    return [booking.model_dump(mode="json") for booking in bookings]


def _insert_booking(cursor, owner: Profile, request: BookingCreate) -> Booking:
    try:
        return store.insert_booking(
            cursor,
            owner.user_id,
            request.player1_name or owner.name,
            _value(request.player1_level or owner.level),
            _value(request.player1_team or owner.gender),
            request.player2_name,
            _value(request.player2_level),
            _value(request.player2_team),
        )
    except UniqueViolation:
        raise BookingNotAllowed(BlockReason.ALREADY_BOOKED)


@app.post("/api/bookings", response_model=Booking)
def create_booking(request: BookingCreate, x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        profile = require_user(cursor, x_user_token)
        reason = booking_block_reason(
            store.get_system_state(cursor, for_update=True),
            store.get_priority_queue(cursor),
            profile.user_id,
            store.get_bookings(cursor),
        )
        if reason is not None:
            logger.info("Booking refused", extra={"user_id": profile.user_id, "reason": reason.value})
            raise BookingNotAllowed(reason)
        booking = _insert_booking(cursor, profile, request)
    logger.info("Booking created", extra={"user_id": profile.user_id, "booking_id": booking.id})
    announce("bookings")
    return booking


@app.delete("/api/bookings/{booking_id}")
def delete_booking(booking_id: int, x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        profile = require_user(cursor, x_user_token)
        booking = store.get_booking(cursor, booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        if booking.user_id != profile.user_id and not store.is_admin(cursor, profile.user_id):
            raise HTTPException(status_code=403, detail="You can only delete your own booking")
        store.delete_booking(cursor, booking_id)
    logger.info("Booking deleted", extra={"booking_id": booking_id, "deleted_by": profile.user_id})
    announce("bookings")
    return {"message": "Booking deleted"}


# ============ ADMIN ============

@app.get("/api/admin/profiles", response_model=list[Profile])
def admin_list_profiles(x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        require_admin(cursor, x_user_token)
        return store.list_profiles(cursor)


@app.put("/api/admin/system-state", response_model=SystemState)
def admin_update_system_state(update: SystemStateUpdate, x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        require_admin(cursor, x_user_token)
        state = store.update_system_state(
            cursor, update.is_priority_mode, update.is_open_for_all, update.priority_timer_duration
        )
    logger.info("System state updated", extra=update.model_dump())
    announce("system_state")
    return state


@app.post("/api/admin/priority-timer", response_model=SystemState)
def admin_start_timer(request: TimerStart, x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        require_admin(cursor, x_user_token)
        state = store.start_priority_timer(cursor, request.duration)
    logger.info("Priority timer started", extra={"duration": state.priority_timer_duration})
    announce("system_state")
    return state


@app.delete("/api/admin/priority-timer", response_model=SystemState)
def admin_stop_timer(x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        require_admin(cursor, x_user_token)
        state = store.stop_priority_timer(cursor)
    logger.info("Priority timer stopped")
    announce("system_state")
    return state


@app.put("/api/admin/priority-queue/order", response_model=list[PriorityQueueEntry])
def admin_reorder_queue(order: QueueReorder, x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        require_admin(cursor, x_user_token)
        queue = store.get_priority_queue(cursor, lock=True)
        if set(order.user_ids) != {entry.user_id for entry in queue}:
            raise HTTPException(status_code=400, detail="Order must list every queued user exactly once")
        store.reorder_queue(cursor, order.user_ids)
        reordered = store.get_priority_queue(cursor)
    announce("priority_queue")
    return reordered


@app.delete("/api/admin/priority-queue")
def admin_clear_queue(x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        require_admin(cursor, x_user_token)
        removed = store.clear_queue(cursor)
    logger.info("Priority queue cleared", extra={"removed": removed})
    announce("priority_queue")
    return {"message": "Priority queue cleared", "removed": removed}


@app.post("/api/admin/bookings", response_model=Booking)
def admin_create_booking(request: ManualBookingCreate, x_user_token: Optional[str] = Header(None)):
    """Book on behalf of a user. Skips the mode checks but not the one-booking rule."""
    with get_db() as conn:
        cursor = conn.cursor()
        admin = require_admin(cursor, x_user_token)
        owner = store.get_profile(cursor, request.user_id)
        if not owner:
            raise HTTPException(status_code=404, detail="User not found")
        if any(b.user_id == owner.user_id for b in store.get_bookings(cursor)):
            raise BookingNotAllowed(BlockReason.ALREADY_BOOKED)
        booking = _insert_booking(cursor, owner, request)
    logger.info("Manual booking created", extra={"user_id": owner.user_id, "created_by": admin.user_id})
    announce("bookings")
    return booking


@app.post("/api/admin/teams", response_model=TeamsResponse)
def admin_generate_teams(request: TeamGenerateRequest, x_user_token: Optional[str] = Header(None)):
    with get_db() as conn:
        cursor = conn.cursor()
        require_admin(cursor, x_user_token)
        bookings = store.get_bookings(cursor)

    if len(bookings) < MIN_BOOKINGS_FOR_TEAMS:
        raise HTTPException(
            status_code=400,
            detail=f"At least {MIN_BOOKINGS_FOR_TEAMS} active bookings are needed, found {len(bookings)}"
        )

    teams = generate_teams(bookings, request.players_per_team)
    total_players = len(flatten_players(bookings))
    message = format_teams_message(teams, total_players)
    logger.info("Teams generated", extra={"teams": len(teams), "total_players": total_players})
    return TeamsResponse(
        teams=teams,
        total_players=total_players,
        message=message,
        share_url=whatsapp_share_url(message),
    )


# ============ REALTIME ============

@app.websocket("/api/ws")
async def changes_socket(websocket: WebSocket, token: Optional[str] = Query(default=None)):
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    def lookup():
        with get_db() as conn:
            return store.get_profile(conn.cursor(), token)

    if not await run_in_threadpool(lookup):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    sender = asyncio.create_task(stream_changes(websocket, notifier))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Change stream failed", extra={"path": "/api/ws"})


# ============ CONFIGURATION ============

@app.get("/api/config")
def get_config():
    return {
        "contact_method": CONTACT_METHOD,
        "levels": [level.value for level in PROFILE_LEVELS],
        "genders": [gender.value for gender in PROFILE_GENDERS],
        "booking_genders": [gender.value for gender in BOOKING_GENDERS],
        "not_informed": NOT_INFORMED,
        "players_per_team": PLAYERS_PER_TEAM,
        "min_bookings_for_teams": MIN_BOOKINGS_FOR_TEAMS,
        "priority_queue_limit": PRIORITY_QUEUE_LIMIT,
    }


# ============ HEALTH CHECK ============

@app.get("/api/health")
def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT, reload=DEBUG)
