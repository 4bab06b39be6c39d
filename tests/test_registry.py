"""
Tests for the rule registry and rule configuration handling.
"""

from roundscheduler.services.registry import (
    RULES_REGISTRY,
    RuleConfiguration,
    create_rule_from_configuration,
    create_rules_from_configurations,
    deduplicate_rule_configurations,
    get_default_rule_configurations,
    get_default_rules,
    get_player_rules,
    get_rule_definition,
    get_team_rules,
    merge_rule_configurations,
    migrate_rule_configurations,
)
from roundscheduler.services.rules import (
    AvoidBackToBackGames, LimitVenueTime, PreventTeamDoubleBooking, EnsurePlayerWarmupTime
)
from roundscheduler.services.scripted_rule import ScriptedRule


def test_registry_lists_every_builtin():
    ids = [definition.id for definition in RULES_REGISTRY]
    assert len(ids) == 13
    assert len(set(ids)) == 13
    assert get_rule_definition("back_to_back").rule_class is AvoidBackToBackGames
    assert get_rule_definition("nope") is None
    assert {d.id for d in RULES_REGISTRY if d.critical} == {
        "prevent_team_double_booking", "avoid_playing_after_setup"
    }


def test_team_and_player_rule_groups():
    team_ids = {d.id for d in get_team_rules()}
    player_ids = {d.id for d in get_player_rules()}
    assert "back_to_back" in team_ids and "back_to_back" in player_ids
    assert "balance_referee" in team_ids and "balance_referee" not in player_ids
    assert "warmup_time" in player_ids and "warmup_time" not in team_ids


def test_default_rules_skip_disabled_warmup():
    rules = get_default_rules()
    assert len(rules) == 12
    assert not any(isinstance(rule, EnsurePlayerWarmupTime) for rule in rules)
    configs = get_default_rule_configurations()
    venue = next(c for c in configs if c.id == "limit_venue_time")
    assert venue.configured_params == {"max_hours": 5, "minutes_per_slot": 40}


def test_builtin_with_parameters():
    rule = create_rule_from_configuration({
        "id": "limit_venue_time",
        "priority": 7,
        "configured_params": {"max_hours": 3},
    })
    assert isinstance(rule, LimitVenueTime)
    assert rule.priority == 7
    assert rule.max_hours == 3
    assert rule.minutes_per_slot == 40


def test_camel_case_parameters_accepted():
    rule = create_rule_from_configuration({
        "id": "limit_venue_time",
        "priority": 2,
        "configured_params": {"maxHours": 4.5, "minutesPerSlot": 30},
    })
    assert rule.max_hours == 4.5
    assert rule.minutes_per_slot == 30


def test_invalid_configurations_are_skipped(caplog):
    bad = [
        {"id": "does_not_exist", "priority": 3},
        {"id": "limit_venue_time", "priority": 2, "configured_params": {"max_hours": 50}},
        {"id": "limit_venue_time", "priority": 2, "configured_params": {"max_hours": "five"}},
        {"id": "limit_venue_time", "priority": 2, "configured_params": {"colour": 1}},
        {"id": "back_to_back", "priority": 11},
        {"id": "duplicate", "type": "duplicated", "priority": 3},
        {"id": "custom_1", "type": "custom", "priority": 3, "code": "import os"},
        {"id": "custom_2", "type": "custom", "priority": 3, "code": ""},
    ]
    with caplog.at_level("WARNING"):
        for config in bad:
            assert create_rule_from_configuration(config) is None
    assert len([r for r in caplog.records if r.levelname == "WARNING"]) == len(bad)


def test_valid_entries_survive_invalid_neighbours():
    rules = create_rules_from_configurations([
        {"id": "does_not_exist", "priority": 3},
        {"id": "back_to_back", "priority": 5},
    ])
    assert len(rules) == 1
    assert isinstance(rules[0], AvoidBackToBackGames)


def test_disabled_rules():
    assert create_rule_from_configuration({"id": "back_to_back", "priority": 5, "enabled": False}) is None

    critical = create_rule_from_configuration(
        {"id": "prevent_team_double_booking", "priority": 10, "enabled": False}
    )
    assert isinstance(critical, PreventTeamDoubleBooking)
    assert critical.enabled


def test_duplicated_rule_uses_base_class():
    rule = create_rule_from_configuration(RuleConfiguration(
        id="back_to_back_copy",
        name="Back-to-back (strict)",
        type="duplicated",
        base_rule_id="back_to_back",
        priority=9,
    ))
    assert isinstance(rule, AvoidBackToBackGames)
    assert rule.name == "Back-to-back (strict)"
    assert AvoidBackToBackGames.name == "Avoid back-to-back games"


def test_custom_rule():
    rule = create_rule_from_configuration({
        "id": "custom_1",
        "name": "No court 3",
        "type": "custom",
        "priority": 4,
        "code": "for m in schedule.matches:\n    if m.field == 'Court 3':\n        violations.append({'description': 'closed'})",
    })
    assert isinstance(rule, ScriptedRule)
    assert rule.name == "No court 3"
    assert rule.rule_id == "custom_1"
    assert rule.priority == 4


def test_missing_priority_uses_registry_priority():
    critical = create_rule_from_configuration({"id": "prevent_team_double_booking"})
    assert critical.priority == 10
    assert create_rule_from_configuration({"id": "back_to_back"}).priority == 5

    copy = create_rule_from_configuration({
        "id": "double_booking_copy", "type": "duplicated", "base_rule_id": "prevent_team_double_booking",
    })
    assert copy.priority == 10

    custom = create_rule_from_configuration({"id": "custom_2", "type": "custom", "code": "pass"})
    assert custom.priority == ScriptedRule.default_priority


def test_explicit_priority_still_wins():
    assert create_rule_from_configuration({"id": "prevent_team_double_booking", "priority": 3}).priority == 3


def test_migrate_rule_configurations():
    migrated = migrate_rule_configurations([
        {"id": "player_back_to_back", "priority": 5},
        {"id": "player_rest_time", "priority": 1},
        {"id": "avoid_large_gaps", "priority": 1},
        {"id": "obsolete_rule", "priority": 1},
        {"id": "first_last", "name": "old name", "priority": 4, "category": "player"},
        {"id": "custom_9", "type": "custom", "priority": 2, "code": "pass"},
    ])
    ids = [config.id for config in migrated]
    assert ids == ["back_to_back", "manage_rest_and_gaps", "first_last", "custom_9"]
    first_last = migrated[2]
    assert first_last.name == "Avoid having first and last game"
    assert first_last.category == "both"


def test_merge_adds_new_defaults_and_deduplicates():
    merged = merge_rule_configurations([
        {"id": "back_to_back", "priority": 8},
        {"id": "back_to_back", "priority": 2},
    ])
    assert len(merged) == len(RULES_REGISTRY)
    back_to_back = [config for config in merged if config.id == "back_to_back"]
    assert len(back_to_back) == 1
    assert back_to_back[0].priority == 8

    assert len(deduplicate_rule_configurations([{"id": "x"}, {"id": "x"}])) == 1
