"""
Tests for the entity model: identity, structure checks and deep copies.
"""

import pytest

from roundscheduler.models import (
    ActivityType, Division, Match, Player, Schedule, Team, Violation, level_for_priority
)
from roundscheduler.core.exceptions import ScheduleIntegrityError


def make_team(name, division=Division.MIXED, players=()):
    return Team(name, division, tuple(Player(p) for p in players))


def test_team_identity_is_name_and_division():
    assert make_team("Hawks") == make_team("Hawks", players=["Ann"])
    assert make_team("Hawks") != make_team("Hawks", Division.GENDERED)
    assert len({make_team("Hawks"), make_team("Hawks"), make_team("Hawks", Division.CLOTH)}) == 2


def test_player_from_row_blank_cells():
    player = Player.from_row(["Ann", "Hawks", " ", None])
    assert player.name == "Ann"
    assert player.mixed_team == "Hawks"
    assert player.gendered_team is None
    assert player.cloth_team is None
    assert player.team_for(Division.MIXED) == "Hawks"

    short = Player.from_row(["Bob"])
    assert short.cloth_team is None


def test_violation_level_follows_priority():
    assert level_for_priority(10) == "critical"
    assert level_for_priority(5) == "warning"
    assert level_for_priority(3) == "alert"
    assert level_for_priority(1) == "note"
    assert Violation("r", "d", priority=4).level == "warning"
    assert Violation("r", "d", priority=4, level="note").level == "note"


def test_match_helpers():
    a, b, c = make_team("A"), make_team("B"), make_team("C")
    match = Match(a, b, 1, "Court 1", Division.MIXED, referee_team=c)
    assert match.involves_team("A")
    assert not match.involves_team("C")
    assert [t.name for t in match.get_all_involved_teams()] == ["A", "B", "C"]
    assert match.to_dict()["referee_team"] == "C"
    assert not match.is_special_activity()
    assert Match(a, b, 0, "Court 1", Division.MIXED, activity_type=ActivityType.SETUP).is_special_activity()


def test_validate_structure_rejects_self_play():
    a = make_team("A")
    schedule = Schedule([Match(a, a, 2, "Court 1", Division.MIXED)])
    with pytest.raises(ScheduleIntegrityError, match="playing itself"):
        schedule.validate_structure()


def test_validate_structure_rejects_playing_referee():
    a, b = make_team("A"), make_team("B")
    schedule = Schedule([Match(a, b, 2, "Court 4", Division.MIXED, referee_team=b)])
    with pytest.raises(ScheduleIntegrityError, match="Court 4"):
        schedule.validate_structure()


def test_validate_structure_rejects_missing_team():
    schedule = Schedule([Match(make_team("A"), None, 1, "Court 1", Division.MIXED)])
    with pytest.raises(ScheduleIntegrityError, match="missing team"):
        schedule.validate_structure()


def test_deep_copy_is_independent():
    a, b, c = make_team("A"), make_team("B"), make_team("C")
    m1 = Match(a, b, 1, "Court 1", Division.MIXED)
    m2 = Match(a, c, 2, "Court 1", Division.MIXED)
    schedule = Schedule([m1, m2], violations=[Violation("r", "d", [m2], priority=5)], score=5)

    copy = schedule.deep_copy()
    copy.matches[0].time_slot = 9
    copy.matches[0].field = "Court 9"

    assert m1.time_slot == 1
    assert m1.field == "Court 1"
    assert copy.score == 5
    assert copy.violations[0].matches[0] is copy.matches[1]
    assert schedule.violations[0].matches[0] is m2
    # teams are immutable and shared
    assert copy.matches[1].team2 is c


def test_schedule_queries():
    a, b, c = make_team("A"), make_team("B"), make_team("C", Division.GENDERED)
    d = make_team("D", Division.GENDERED)
    schedule = Schedule([
        Match(a, b, 3, "Court 2", Division.MIXED, referee_team=c),
        Match(c, d, 1, "Court 1", Division.GENDERED),
    ])
    assert schedule.time_slots() == [1, 3]
    assert schedule.fields() == ["Court 2", "Court 1"]
    assert [t.name for t in schedule.teams()] == ["A", "B", "C", "D"]
    assert len(schedule.get_team_matches("C")) == 1
    assert len(schedule.get_matches_by_division(Division.GENDERED)) == 1
    assert schedule.to_dict()["matches"][0]["time_slot"] == 3
