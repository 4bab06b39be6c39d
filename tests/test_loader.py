"""
Tests for building teams and schedules from row data.
"""

import pytest

from roundscheduler.models import ActivityType, Division, Match, Team
from roundscheduler.services.loader import (
    create_activity,
    create_division_blocks,
    create_matches_from_rows,
    create_teams_from_players,
    find_team_across_divisions,
    load_schedule_payload,
    parse_division,
    players_from_rows,
)
from roundscheduler.core.config import ACTIVITY_PLACEHOLDER
from roundscheduler.core.exceptions import ScheduleImportError


PLAYER_ROWS = [
    ["Alice", "Mixed A", "Girls A", None],
    ["Bella", "Mixed A", "Girls A", "Cloth A"],
    ["Carl", "Mixed B", "Boys B", "Cloth A"],
    {"name": "Dana", "mixed_team": "Mixed B", "gendered_team": "Girls A"},
    ["", "Mixed C", None, None],
]


def teams():
    return create_teams_from_players(players_from_rows(PLAYER_ROWS))


def test_players_and_teams_from_rows():
    players = players_from_rows(PLAYER_ROWS)
    assert [p.name for p in players] == ["Alice", "Bella", "Carl", "Dana"]
    assert players[0].cloth_team is None

    teams_map = teams()
    mixed_a = teams_map[Division.MIXED]["Mixed A"]
    assert [p.name for p in mixed_a.players] == ["Alice", "Bella"]
    assert set(teams_map[Division.GENDERED]) == {"Girls A", "Boys B"}
    assert [p.name for p in teams_map[Division.CLOTH]["Cloth A"].players] == ["Bella", "Carl"]
    assert "Mixed C" not in teams_map[Division.MIXED]


def test_parse_division():
    assert parse_division(" Mixed ") == Division.MIXED
    assert parse_division(Division.CLOTH) == Division.CLOTH
    with pytest.raises(ScheduleImportError):
        parse_division("juniors")


def test_find_team_prefers_given_division():
    teams_map = {
        Division.MIXED: {"Eagles": Team("Eagles", Division.MIXED)},
        Division.CLOTH: {"Eagles": Team("Eagles", Division.CLOTH)},
    }
    assert find_team_across_divisions("Eagles", teams_map).division == Division.MIXED
    assert find_team_across_divisions("Eagles", teams_map, "cloth").division == Division.CLOTH
    assert find_team_across_divisions("Hawks", teams_map) is None


def test_matches_from_list_and_dict_rows():
    matches = create_matches_from_rows([
        [1, "mixed", "Court 1", "Mixed A", "Mixed B", "Girls A", "TRUE"],
        {"time_slot": "2", "division": "gendered", "field": "Court 2",
         "team1": "Girls A", "team2": "Boys B", "referee_team": "Mixed A", "locked": "false"},
    ], teams())

    first, second = matches
    assert first.time_slot == 1
    assert first.locked
    assert first.referee_team.name == "Girls A"
    assert first.referee_team.division == Division.GENDERED
    assert second.time_slot == 2
    assert not second.locked
    assert second.referee_team.division == Division.MIXED
    assert second.activity_type == ActivityType.REGULAR


def test_unknown_referee_is_created():
    teams_map = teams()
    matches = create_matches_from_rows([[1, "mixed", "Court 1", "Mixed A", "Mixed B", "Volunteers"]], teams_map)
    assert matches[0].referee_team == Team("Volunteers", Division.MIXED)
    assert "Volunteers" in teams_map[Division.MIXED]


def test_unknown_playing_team_is_rejected():
    with pytest.raises(ScheduleImportError, match="Row 2: teams not found in division mixed: Mixed Z"):
        create_matches_from_rows([
            [1, "mixed", "Court 1", "Mixed A", "Mixed B"],
            [2, "mixed", "Court 1", "Mixed A", "Mixed Z"],
        ], teams())


def test_bad_slot_is_rejected():
    with pytest.raises(ScheduleImportError, match="invalid time slot"):
        create_matches_from_rows([["first", "mixed", "Court 1", "Mixed A", "Mixed B"]], teams())


def test_activity_rows():
    teams_map = teams()
    matches = create_matches_from_rows([
        {"time_slot": 0, "division": "mixed", "field": "Court 1", "activity_type": "setup", "team1": "Mixed A"},
        {"time_slot": 5, "division": "mixed", "field": "Court 1", "activity_type": "packing down"},
    ], teams_map)

    setup, packdown = matches
    assert setup.activity_type == ActivityType.SETUP
    assert setup.team1.name == "Mixed A"
    assert setup.team2.name == ACTIVITY_PLACEHOLDER
    assert setup.locked
    assert packdown.activity_type == ActivityType.PACKING_DOWN
    assert packdown.team1.name == ACTIVITY_PLACEHOLDER

    with pytest.raises(ScheduleImportError):
        create_activity("lunch", 3, "Court 1")
    with pytest.raises(ScheduleImportError):
        create_activity(ActivityType.REGULAR, 3, "Court 1")


def test_division_blocks():
    teams_map = teams()
    mixed_a, mixed_b = teams_map[Division.MIXED]["Mixed A"], teams_map[Division.MIXED]["Mixed B"]
    girls, boys = teams_map[Division.GENDERED]["Girls A"], teams_map[Division.GENDERED]["Boys B"]
    matches = [
        create_activity(ActivityType.SETUP, 0, "Court 1"),
        Match(mixed_a, mixed_b, 1, "Court 1", Division.MIXED),
        Match(mixed_b, mixed_a, 1, "Court 2", Division.MIXED),
        Match(girls, boys, 2, "Court 1", Division.GENDERED),
        Match(mixed_a, mixed_b, 3, "Court 1", Division.MIXED),
        create_activity(ActivityType.PACKING_DOWN, 4, "Court 1"),
    ]

    blocked = create_division_blocks(matches, "gendered, mixed")

    slots = [(m.division.value, m.activity_type.value, m.time_slot) for m in blocked]
    assert slots == [
        ("mixed", "SETUP", 0),
        ("gendered", "REGULAR", 1),
        ("mixed", "REGULAR", 2),
        ("mixed", "REGULAR", 2),
        ("mixed", "REGULAR", 3),
        ("mixed", "PACKING_DOWN", 4),
    ]
    # input untouched
    assert [m.time_slot for m in matches] == [0, 1, 1, 2, 3, 4]
    assert all(a is not b for a, b in zip(blocked, matches))


def test_division_blocks_append_unlisted_divisions():
    a, b = Team("A", Division.CLOTH), Team("B", Division.CLOTH)
    c, d = Team("C", Division.MIXED), Team("D", Division.MIXED)
    blocked = create_division_blocks([
        Match(a, b, 1, "Court 1", Division.CLOTH),
        Match(c, d, 2, "Court 1", Division.MIXED),
    ], ["mixed"])
    assert [(m.division, m.time_slot) for m in blocked] == [(Division.MIXED, 1), (Division.CLOTH, 2)]


def test_load_schedule_payload():
    teams_map, schedule = load_schedule_payload({
        "players": PLAYER_ROWS,
        "teams": {"cloth": ["Cloth B"]},
        "matches": [
            [1, "mixed", "Court 1", "Mixed A", "Mixed B"],
            [1, "cloth", "Court 2", "Cloth A", "Cloth B", "Boys B"],
        ],
    })
    assert len(schedule.matches) == 2
    assert teams_map[Division.CLOTH]["Cloth B"].players == ()
    assert schedule.matches[1].referee_team.division == Division.GENDERED
    schedule.validate_structure()


def test_empty_payload():
    _, schedule = load_schedule_payload({})
    assert schedule.matches == []
