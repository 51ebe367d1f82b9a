"""Tests for balanced team generation and the team/booking exports."""

import random
from collections import Counter
from urllib.parse import unquote

from conftest import make_booking
from constants import Gender, Level, NOT_INFORMED
from models import Booking, GeneratedTeam, TeamPlayer
from teams import (
    flatten_players,
    format_teams_message,
    generate_teams,
    group_bookings,
    whatsapp_share_url,
)

LEVELS = ["iniciante", "intermediario", "avancado"]
TEAMS = ["masculino", "feminino"]


def _single_bookings(count: int, seed: int = 7) -> list[Booking]:
    rng = random.Random(seed)
    return [
        make_booking(
            booking_id=i,
            user_id=f"u{i}",
            name=f"Player {i}",
            level=rng.choice(LEVELS),
            team=rng.choice(TEAMS),
        )
        for i in range(count)
    ]


def _roster_multiset(teams: list[GeneratedTeam]) -> Counter:
    return Counter((p.name, p.level, p.gender) for team in teams for p in team.players)


def _input_multiset(bookings: list[Booking]) -> Counter:
    return Counter((p.name, p.level.value, p.gender.value) for p in flatten_players(bookings))


# ---------------------------------------------------------------------------
# flatten_players
# ---------------------------------------------------------------------------
class TestFlattenPlayers:
    def test_partner_included_only_when_named(self):
        bookings = [
            make_booking(booking_id=1, name="Ana", player2_name="Bia", player2_level="iniciante",
                         player2_team="feminino"),
            make_booking(booking_id=2, name="Caio", level="iniciante", team="masculino"),
        ]
        players = flatten_players(bookings)
        assert [p.name for p in players] == ["Ana", "Bia", "Caio"]
        assert [p.slot for p in players] == [0, 1, 2]

    def test_missing_attributes_become_not_informed(self):
        booking = make_booking(level=None, team=None, player2_name="Bia", player2_level="pro",
                               player2_team="")
        players = flatten_players([booking])
        assert all(p.level == Level.NOT_INFORMED for p in players)
        assert all(p.gender == Gender.NOT_INFORMED for p in players)
        assert players[0].level.value == NOT_INFORMED

    def test_blank_partner_name_is_ignored(self):
        assert len(flatten_players([make_booking(player2_name="")])) == 1


# ---------------------------------------------------------------------------
# generate_teams
# ---------------------------------------------------------------------------
class TestGenerateTeams:
    def test_too_few_players_gives_no_teams(self):
        assert generate_teams(_single_bookings(5)) == []
        assert generate_teams([]) == []

    def test_twelve_single_bookings_make_two_full_teams(self):
        bookings = _single_bookings(12)
        teams = generate_teams(bookings, 6)
        assert [team.id for team in teams] == [1, 2]
        assert [len(team.players) for team in teams] == [6, 6]
        assert _roster_multiset(teams) == _input_multiset(bookings)

    def test_exact_multiple_keeps_every_player(self):
        for k in (1, 2, 3, 4):
            bookings = _single_bookings(6 * k, seed=k)
            teams = generate_teams(bookings, 6, rng=random.Random(k))
            assert len(teams) == k
            assert all(len(team.players) == 6 for team in teams)
            assert _roster_multiset(teams) == _input_multiset(bookings)

    def test_pairs_count_twice(self):
        bookings = [
            make_booking(booking_id=i, user_id=f"u{i}", name=f"A{i}", player2_name=f"B{i}",
                         player2_level="iniciante", player2_team="masculino")
            for i in range(6)
        ]
        teams = generate_teams(bookings, 6)
        assert len(teams) == 2
        assert sum(len(team.players) for team in teams) == 12

    def test_duplicate_players_are_not_dropped(self):
        # identical name/level/gender triples must each keep their own seat
        bookings = [
            make_booking(booking_id=i, user_id=f"u{i}", name="Joao", level="iniciante", team="masculino")
            for i in range(12)
        ]
        teams = generate_teams(bookings, 6)
        assert [len(team.players) for team in teams] == [6, 6]
        assert _roster_multiset(teams) == Counter({("Joao", "iniciante", "masculino"): 12})

    def test_single_bucket_overflow_goes_to_leftovers(self):
        # 14 players, 2 teams: the round-robin fills both, 2 players stay out
        bookings = [
            make_booking(booking_id=i, user_id=f"u{i}", name=f"P{i}", level="avancado", team="masculino")
            for i in range(14)
        ]
        teams = generate_teams(bookings, 6)
        assert [len(team.players) for team in teams] == [6, 6]

    def test_leftovers_fill_first_team_with_room(self):
        # 7 advanced men + 5 beginner women across 2 teams of 6
        bookings = [
            make_booking(booking_id=i, user_id=f"a{i}", name=f"A{i}", level="avancado", team="masculino")
            for i in range(7)
        ] + [
            make_booking(booking_id=10 + i, user_id=f"b{i}", name=f"B{i}", level="iniciante", team="feminino")
            for i in range(5)
        ]
        teams = generate_teams(bookings, 6, rng=random.Random(1))
        assert [len(team.players) for team in teams] == [6, 6]
        assert _roster_multiset(teams) == _input_multiset(bookings)

    def test_levels_are_spread_across_teams(self):
        bookings = [
            make_booking(booking_id=i, user_id=f"u{i}", name=f"P{i}", level=level, team="masculino")
            for i, level in enumerate(["avancado"] * 4 + ["iniciante"] * 8)
        ]
        teams = generate_teams(bookings, 6, rng=random.Random(3))
        for team in teams:
            assert sum(1 for p in team.players if p.level == "avancado") == 2

    def test_mixed_gender_players_are_placed(self):
        bookings = [
            make_booking(booking_id=i, user_id=f"u{i}", name=f"P{i}", level="intermediario", team="misto")
            for i in range(6)
        ]
        teams = generate_teams(bookings, 6)
        assert len(teams) == 1
        assert {p.gender for p in teams[0].players} == {"misto"}

    def test_seeded_rng_is_reproducible(self):
        bookings = _single_bookings(18)
        first = generate_teams(bookings, 6, rng=random.Random(42))
        second = generate_teams(bookings, 6, rng=random.Random(42))
        assert first == second

    def test_repeat_calls_keep_counts(self):
        bookings = _single_bookings(13)
        for _ in range(5):
            teams = generate_teams(bookings)
            assert len(teams) == 2
            assert sum(len(team.players) for team in teams) == 12


# ---------------------------------------------------------------------------
# exports
# ---------------------------------------------------------------------------
class TestTeamsMessage:
    def _teams(self):
        return [
            GeneratedTeam(id=1, players=[
                TeamPlayer(name="Ana", level="avancado", gender="feminino"),
                TeamPlayer(name="Caio", level="iniciante", gender="masculino"),
            ]),
            GeneratedTeam(id=2, players=[
                TeamPlayer(name="Duda", level=NOT_INFORMED, gender=NOT_INFORMED),
            ]),
        ]

    def test_message_layout(self):
        message = format_teams_message(self._teams(), total_players=3)
        lines = message.split("\n")
        assert lines[0] == "🏐 *TIMES GERADOS*"
        assert "*Time 1* (2 jogadores)" in lines
        assert "1. 👩 Ana - avancado" in lines
        assert "2. 👨 Caio - iniciante" in lines
        assert "1. ❓ Duda - não informado" in lines
        assert lines[-2] == "📊 *Total de jogadores:* 3"
        assert lines[-1] == "🎲 Times gerados automaticamente"

    def test_share_url_round_trips_message(self):
        message = format_teams_message(self._teams(), total_players=3)
        url = whatsapp_share_url(message)
        assert url.startswith("https://wa.me/?text=")
        assert " " not in url and "\n" not in url
        assert unquote(url[len("https://wa.me/?text="):]) == message


class TestGroupBookings:
    def test_order_and_grouping(self):
        bookings = [
            make_booking(booking_id=1, user_id="u1", level="avancado", team="feminino"),
            make_booking(booking_id=2, user_id="u2", level="iniciante", team="masculino"),
            make_booking(booking_id=3, user_id="u3", level=None, team=None),
            make_booking(booking_id=4, user_id="u4", level="iniciante", team="feminino"),
            make_booking(booking_id=5, user_id="u5", level="iniciante", team="masculino"),
        ]
        groups = group_bookings(bookings)
        assert [(g.team, g.level) for g in groups] == [
            ("masculino", "iniciante"),
            ("feminino", "iniciante"),
            ("feminino", "avancado"),
            (NOT_INFORMED, NOT_INFORMED),
        ]
        assert [b.id for b in groups[0].bookings] == [2, 5]

    def test_mixed_team_groups_with_not_informed(self):
        groups = group_bookings([make_booking(team="misto", level="intermediario")])
        assert (groups[0].team, groups[0].level) == (NOT_INFORMED, "intermediario")
