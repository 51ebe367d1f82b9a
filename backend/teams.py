"""Balanced team generation from the pool of active bookings.

Players are bucketed by (level, gender), each bucket is shuffled and dealt
round-robin across the teams, strongest bucket first, so every team gets a
similar mix before the catch-all players are spread out.
"""
import logging
import random
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import quote

from constants import (
    Level, Gender,
    ALLOCATION_LEVEL_ORDER, ALLOCATION_GENDER_ORDER,
    GROUP_GENDER_ORDER, GROUP_LEVEL_ORDER,
    GENDER_EMOJI, GENDER_EMOJI_DEFAULT, PLAYERS_PER_TEAM,
)
from models import Booking, BookingGroup, GeneratedTeam, TeamPlayer

logger = logging.getLogger(__name__)

WHATSAPP_SHARE_URL = "https://wa.me/?text="


@dataclass(frozen=True)
class FlatPlayer:
    """A player pulled out of a booking; ``slot`` is unique per flattening."""
    slot: int
    name: str
    level: Level
    gender: Gender

    @property
    def bucket(self) -> tuple[Level, Gender]:
        # Mixed-team players have no gender bucket of their own
        gender = Gender.NOT_INFORMED if self.gender == Gender.MISTO else self.gender
        return self.level, gender

    def as_team_player(self) -> TeamPlayer:
        return TeamPlayer(name=self.name, level=self.level.value, gender=self.gender.value)


def flatten_players(bookings: Iterable[Booking]) -> list[FlatPlayer]:
    players: list[FlatPlayer] = []
    for booking in bookings:
        players.append(FlatPlayer(
            slot=len(players),
            name=booking.player1_name,
            level=Level.coerce(booking.player1_level),
            gender=Gender.coerce(booking.player1_team),
        ))
        if booking.player2_name:
            players.append(FlatPlayer(
                slot=len(players),
                name=booking.player2_name,
                level=Level.coerce(booking.player2_level),
                gender=Gender.coerce(booking.player2_team),
            ))
    return players


def generate_teams(
    bookings: Iterable[Booking],
    players_per_team: int = PLAYERS_PER_TEAM,
    rng: Optional[random.Random] = None,
) -> list[GeneratedTeam]:
    """Split every booked player into teams of ``players_per_team``.

    Produces ``len(players) // players_per_team`` teams. Players that do not
    fit their round-robin slot are placed afterwards in the first team with
    room, so a team may end up short when supply is uneven. Pass ``rng`` for
    a reproducible grouping.
    """
    rng = rng or random.Random()
    players = flatten_players(bookings)
    num_teams = len(players) // players_per_team
    if num_teams == 0:
        return []

    buckets: dict[tuple[Level, Gender], list[FlatPlayer]] = {
        (level, gender): []
        for level in ALLOCATION_LEVEL_ORDER
        for gender in ALLOCATION_GENDER_ORDER
    }
    for player in players:
        buckets[player.bucket].append(player)

    rosters: list[list[FlatPlayer]] = [[] for _ in range(num_teams)]
    placed: set[int] = set()

    for level in ALLOCATION_LEVEL_ORDER:
        for gender in ALLOCATION_GENDER_ORDER:
            members = list(buckets[(level, gender)])
            rng.shuffle(members)
            for index, player in enumerate(members):
                roster = rosters[index % num_teams]
                if len(roster) < players_per_team:
                    roster.append(player)
                    placed.add(player.slot)

    leftovers = [player for player in players if player.slot not in placed]
    for player in leftovers:
        roster = next((r for r in rosters if len(r) < players_per_team), None)
        if roster is None:
            break
        roster.append(player)

    logger.debug(
        "Allocated players to teams",
        extra={"players": len(players), "teams": num_teams, "leftovers": len(leftovers)},
    )
    return [
        GeneratedTeam(id=i + 1, players=[p.as_team_player() for p in roster])
        for i, roster in enumerate(rosters)
    ]


# ============ EXPORT ============

def gender_emoji(gender: str) -> str:
    return GENDER_EMOJI.get(Gender.coerce(gender), GENDER_EMOJI_DEFAULT)


def format_teams_message(teams: list[GeneratedTeam], total_players: int) -> str:
    """Plain-text team sheet with WhatsApp bold markers."""
    lines = ["🏐 *TIMES GERADOS*", ""]
    for team in teams:
        lines.append(f"*Time {team.id}* ({len(team.players)} jogadores)")
        for index, player in enumerate(team.players, start=1):
            lines.append(f"{index}. {gender_emoji(player.gender)} {player.name} - {player.level}")
        lines.append("")
    lines.append(f"📊 *Total de jogadores:* {total_players}")
    lines.append("🎲 Times gerados automaticamente")
    return "\n".join(lines)


def whatsapp_share_url(message: str) -> str:
    return WHATSAPP_SHARE_URL + quote(message, safe="")


# ============ LISTING ============

def group_bookings(bookings: Iterable[Booking]) -> list[BookingGroup]:
    """Group bookings by the primary player's team and level, in display order."""
    groups: dict[tuple[Gender, Level], list[Booking]] = {}
    for booking in bookings:
        team = Gender.coerce(booking.player1_team)
        if team not in GROUP_GENDER_ORDER:
            team = Gender.NOT_INFORMED
        key = (team, Level.coerce(booking.player1_level))
        groups.setdefault(key, []).append(booking)

    def sort_key(key):
        team, level = key
        return GROUP_GENDER_ORDER.index(team), GROUP_LEVEL_ORDER.index(level)

    return [
        BookingGroup(team=team.value, level=level.value, bookings=groups[(team, level)])
        for team, level in sorted(groups, key=sort_key)
    ]
