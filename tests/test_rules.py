"""
Tests for the built-in schedule rules.
"""

import pytest

from roundscheduler.models import ActivityType, Division, Match, Player, Schedule, Team
from roundscheduler.services.loader import create_activity
from roundscheduler.services.rules import (
    PreventTeamDoubleBooking,
    AvoidPlayingAfterSetup,
    AvoidBackToBackGames,
    AvoidFirstAndLastGame,
    LimitVenueTime,
    DetectMixedDivisionsInTimeSlot,
    AvoidReffingBeforePlaying,
    BalanceRefereeAssignments,
    EnsureFairFieldDistribution,
    PreventClubRefereeConflict,
    ManageRestTimeAndGaps,
    ManagePlayerGameBalance,
    EnsurePlayerWarmupTime,
)
from roundscheduler.core.exceptions import RuleConfigurationError


def make_team(name, division=Division.MIXED, players=()):
    return Team(name, division, tuple(Player(p) for p in players))


def make_match(team1, team2, slot, field="Court 1", referee=None):
    return Match(team1, team2, slot, field, team1.division, referee_team=referee)


# ===== CRITICAL RULES =====

def test_double_booking_same_slot_two_fields():
    a, b, c = make_team("A"), make_team("B"), make_team("C")
    schedule = Schedule([make_match(a, b, 3, "Court 1"), make_match(a, c, 3, "Court 2")])

    violations = PreventTeamDoubleBooking().evaluate(schedule)

    assert len(violations) == 1
    assert violations[0].level == "critical"
    assert violations[0].priority == 10
    assert "Team A" in violations[0].description
    assert len(violations[0].matches) == 2


def test_double_booking_counts_referee_duty():
    a, b, c, d = (make_team(n) for n in "ABCD")
    schedule = Schedule([make_match(a, b, 1, "Court 1", referee=c), make_match(c, d, 1, "Court 2")])

    violations = PreventTeamDoubleBooking().evaluate(schedule)

    assert [v.description for v in violations] == ["Team C has 2 assignments in slot 1"]


def test_double_booking_clean_schedule():
    a, b, c, d = (make_team(n) for n in "ABCD")
    schedule = Schedule([make_match(a, b, 1, "Court 1"), make_match(c, d, 1, "Court 2")])
    assert PreventTeamDoubleBooking().evaluate(schedule) == []


def test_playing_after_setup():
    a, b, c = make_team("A"), make_team("B"), make_team("C")
    setup = create_activity(ActivityType.SETUP, 1, "Court 1", Division.MIXED, team=a)

    violations = AvoidPlayingAfterSetup().evaluate(Schedule([setup, make_match(a, b, 2)]))
    assert len(violations) == 1
    assert violations[0].matches[0] is setup

    assert AvoidPlayingAfterSetup().evaluate(Schedule([setup, make_match(a, b, 3), make_match(b, c, 2)])) == []


# ===== COMBINED RULES =====

def test_back_to_back_team_covers_players():
    a = make_team("A", players=["Ann", "Amy"])
    b = make_team("B", players=["Ben"])
    c = make_team("C", players=["Cal"])
    schedule = Schedule([make_match(a, b, 1), make_match(a, c, 2)])

    violations = AvoidBackToBackGames().evaluate(schedule)

    assert len(violations) == 1
    assert violations[0].description.startswith("Team A")
    assert violations[0].priority == 5


def test_back_to_back_player_across_divisions():
    mixed = make_team("A", players=["Xena"])
    gendered = make_team("G", Division.GENDERED, players=["Xena"])
    schedule = Schedule([
        make_match(mixed, make_team("B"), 1),
        make_match(gendered, make_team("H", Division.GENDERED), 2, "Court 2"),
    ])

    violations = AvoidBackToBackGames().evaluate(schedule)

    assert len(violations) == 1
    assert violations[0].description.startswith("Player Xena")


def test_back_to_back_streak_of_three():
    a = make_team("A")
    schedule = Schedule([make_match(a, make_team(n), slot) for n, slot in (("B", 4), ("C", 5), ("D", 6))])
    violations = AvoidBackToBackGames().evaluate(schedule)
    assert len(violations) == 1
    assert "3 consecutive games" in violations[0].description


def test_first_and_last_game():
    a = make_team("A", players=["Ann"])
    schedule = Schedule([
        make_match(a, make_team("B"), 1),
        make_match(make_team("C"), make_team("D"), 2),
        make_match(a, make_team("E"), 3),
    ])

    violations = AvoidFirstAndLastGame().evaluate(schedule)

    assert len(violations) == 1
    assert violations[0].description.startswith("Team A")


def test_first_and_last_includes_setup_and_packdown():
    a, b, c = make_team("A"), make_team("B"), make_team("C")
    d = make_team("D")
    schedule = Schedule([
        create_activity("SETUP", 0, "Court 1", team=d),
        make_match(a, b, 1),
        make_match(b, c, 3),
        create_activity("PACKING_DOWN", 4, "Court 1", team=d),
    ])
    violations = AvoidFirstAndLastGame().evaluate(schedule)
    assert sorted(v.description.split()[1] for v in violations) == ["B", "D"]


def test_limit_venue_time_team_suppresses_players():
    a = make_team("A", players=["Ann"])
    schedule = Schedule([make_match(a, make_team("B"), 1), make_match(a, make_team("C"), 3)])

    violations = LimitVenueTime(max_hours=1, minutes_per_slot=40).evaluate(schedule)

    assert len(violations) == 1
    assert "Team A" in violations[0].description
    assert "2.0 hours" in violations[0].description


def test_limit_venue_time_within_limit():
    a = make_team("A", players=["Ann"])
    schedule = Schedule([make_match(a, make_team("B"), 1), make_match(a, make_team("C"), 3)])
    assert LimitVenueTime().evaluate(schedule) == []


def test_mixed_divisions_in_time_slot():
    schedule = Schedule([
        make_match(make_team("A"), make_team("B"), 1),
        make_match(make_team("G", Division.GENDERED), make_team("H", Division.GENDERED), 1, "Court 2"),
        make_match(make_team("C"), make_team("D"), 2),
    ])
    violations = DetectMixedDivisionsInTimeSlot().evaluate(schedule)
    assert len(violations) == 1
    assert "mixed, gendered" in violations[0].description


# ===== TEAM RULES =====

def test_reffing_before_playing():
    a, b, c, d = (make_team(n) for n in "ABCD")
    violations = AvoidReffingBeforePlaying().evaluate(Schedule([
        make_match(a, b, 1, referee=c),
        make_match(c, d, 2),
    ]))
    assert len(violations) == 1
    assert violations[0].description == "Team C referees in slot 1 and plays in slot 2"

    assert AvoidReffingBeforePlaying().evaluate(Schedule([
        make_match(a, b, 2, referee=c),
        make_match(c, d, 1),
    ])) == []


def test_balance_referee_assignments():
    teams = {n: make_team(n) for n in "ABCDEFGH"}
    schedule = Schedule([
        make_match(teams["A"], teams["B"], 1, referee=teams["G"]),
        make_match(teams["C"], teams["D"], 2, referee=teams["G"]),
        make_match(teams["E"], teams["F"], 3, referee=teams["G"]),
        make_match(teams["A"], teams["C"], 4, referee=teams["H"]),
    ])

    violations = BalanceRefereeAssignments().evaluate(schedule)
    assert len(violations) == 1
    assert "1-3" in violations[0].description

    assert BalanceRefereeAssignments(max_referee_difference=2).evaluate(schedule) == []


def test_fair_field_distribution():
    a = make_team("A")
    schedule = Schedule([make_match(a, make_team(n), slot) for n, slot in (("B", 1), ("C", 3), ("D", 5))])

    violations = EnsureFairFieldDistribution().evaluate(schedule)
    assert len(violations) == 1
    assert "3/3 games on Court 1" in violations[0].description

    assert EnsureFairFieldDistribution(field_distribution_threshold=1.0).evaluate(schedule) == []


def test_club_referee_conflict():
    schedule = Schedule([
        make_match(make_team("Hawks Red"), make_team("Owls"), 1, "Court 1"),
        make_match(make_team("Lions"), make_team("Tigers"), 1, "Court 2", referee=make_team("Hawks Blue")),
    ])
    violations = PreventClubRefereeConflict().evaluate(schedule)
    assert len(violations) == 1
    assert "Hawks Red" in violations[0].description
    assert PreventClubRefereeConflict.extract_club_name("  Owls ") == "Owls"
    assert PreventClubRefereeConflict.extract_club_name("") is None


# ===== PLAYER RULES =====

def test_rest_time_too_short_and_gap_too_long():
    a = make_team("A", players=["Ann"])
    short = Schedule([make_match(a, make_team("B"), 1), make_match(a, make_team("C"), 2)])
    long = Schedule([make_match(a, make_team("B"), 1), make_match(a, make_team("C"), 10)])
    fine = Schedule([make_match(a, make_team("B"), 1), make_match(a, make_team("C"), 4)])

    rule = ManageRestTimeAndGaps()
    assert "insufficient rest" in rule.evaluate(short)[0].description
    assert "8-slot gap" in rule.evaluate(long)[0].description
    assert rule.evaluate(fine) == []


def test_player_game_limit():
    a = make_team("A", players=["Ann"])
    schedule = Schedule([make_match(a, make_team(n), slot) for n, slot in (("B", 1), ("C", 4), ("D", 7))])
    violations = ManagePlayerGameBalance(max_games=2).evaluate(schedule)
    assert len(violations) == 1
    assert "3 games (max: 2)" in violations[0].description


def test_player_game_imbalance_within_division():
    a = make_team("A", players=["Ann"])
    b = make_team("B", players=["Ben"])
    schedule = Schedule([
        make_match(a, b, 1),
        make_match(a, make_team("C"), 4),
        make_match(a, make_team("D"), 7),
    ])
    violations = ManagePlayerGameBalance(max_games=10).evaluate(schedule)
    assert len(violations) == 1
    assert "imbalance in mixed: 1-3" in violations[0].description


def test_warmup_time():
    a = make_team("A", players=["Ann"])
    rule = EnsurePlayerWarmupTime(min_warmup_slots=1)
    assert len(rule.evaluate(Schedule([make_match(a, make_team("B"), 1)]))) == 1
    assert rule.evaluate(Schedule([make_match(a, make_team("B"), 2)])) == []


# ===== CONTRACT =====

@pytest.mark.parametrize("priority", [0, 11, "5", 2.5, True])
def test_priority_must_be_in_range(priority):
    with pytest.raises(RuleConfigurationError):
        AvoidBackToBackGames(priority)


def test_configured_priority_flows_to_violations():
    a, b, c = make_team("A"), make_team("B"), make_team("C")
    schedule = Schedule([make_match(a, b, 1), make_match(a, c, 2)])
    violations = AvoidBackToBackGames(priority=8).evaluate(schedule)
    assert violations[0].priority == 8
    assert violations[0].rule_name == "Avoid back-to-back games"


def test_rules_do_not_mutate_schedule():
    a, b, c = make_team("A", players=["Ann"]), make_team("B"), make_team("C")
    schedule = Schedule([make_match(a, b, 1, referee=c), make_match(a, c, 2)])
    before = schedule.to_dict()
    for rule in (AvoidBackToBackGames(), AvoidFirstAndLastGame(), LimitVenueTime(), ManageRestTimeAndGaps()):
        rule.evaluate(schedule)
    assert schedule.to_dict() == before
