"""
Central registry of built-in rules and the conversion from rule configurations
to live rule instances.

To add a built-in rule, implement it in rules.py and add a RuleDefinition here;
the API, CLI and default configuration pick it up from RULES_REGISTRY.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field

from roundscheduler.services.rules import (
    ScheduleRule,
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
from roundscheduler.services.scripted_rule import ScriptedRule
from roundscheduler.core.config import MIN_PRIORITY, MAX_PRIORITY
from roundscheduler.core.exceptions import RuleConfigurationError
from roundscheduler.core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RuleParameter:
    name: str
    type: str
    default: Any
    description: str
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None

    def validate(self, value: Any) -> Any:
        """
        Check a configured value against this parameter.

        Returns:
            The value, coerced to the parameter type

        Raises:
            RuleConfigurationError: If the value has the wrong type or is out of range
        """
        if self.type == "boolean":
            if not isinstance(value, bool):
                raise RuleConfigurationError(f"{self.name} must be a boolean, got {value!r}")
            return value

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise RuleConfigurationError(f"{self.name} must be a number, got {value!r}")
        if self.min is not None and value < self.min:
            raise RuleConfigurationError(f"{self.name} must be at least {self.min}, got {value}")
        if self.max is not None and value > self.max:
            raise RuleConfigurationError(f"{self.name} must be at most {self.max}, got {value}")
        if isinstance(self.default, int) and float(value).is_integer():
            return int(value)
        return value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "default": self.default,
            "min": self.min,
            "max": self.max,
            "step": self.step,
            "description": self.description,
        }


@dataclass(frozen=True)
class RuleDefinition:
    id: str
    name: str
    description: str
    category: str
    priority: int
    rule_class: Type[ScheduleRule]
    enabled: bool = True
    critical: bool = False
    parameters: Dict[str, RuleParameter] = field(default_factory=dict)

    def default_params(self) -> Dict[str, Any]:
        return {key: param.default for key, param in self.parameters.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "enabled": self.enabled,
            "critical": self.critical,
            "parameters": {key: param.to_dict() for key, param in self.parameters.items()},
        }


class RuleConfiguration(BaseModel):
    """A single entry of a rule configuration list, as stored or sent by clients."""
    id: str
    name: str = ""
    type: Literal["builtin", "duplicated", "custom"] = "builtin"
    enabled: bool = True
    # None means the priority of the rule definition (or the scripted rule default)
    priority: Optional[int] = Field(default=None, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    category: Optional[str] = None
    configured_params: Optional[Dict[str, Any]] = None
    code: Optional[str] = None
    base_rule_id: Optional[str] = None


RULES_REGISTRY: List[RuleDefinition] = [
    # ===== CRITICAL RULES (cannot be disabled) =====
    RuleDefinition(
        id="prevent_team_double_booking",
        name="Prevent team double-booking",
        description="Prevents teams from being scheduled for several assignments in the same time slot.",
        category="team",
        priority=10,
        rule_class=PreventTeamDoubleBooking,
        critical=True,
    ),
    RuleDefinition(
        id="avoid_playing_after_setup",
        name="Avoid playing immediately after setup",
        description="Prevents teams from playing in the slot right after doing setup work.",
        category="team",
        priority=10,
        rule_class=AvoidPlayingAfterSetup,
        critical=True,
    ),

    # ===== COMBINED RULES =====
    RuleDefinition(
        id="back_to_back",
        name="Avoid back-to-back games",
        description="Prevents teams and players from playing in consecutive time slots.",
        category="both",
        priority=5,
        rule_class=AvoidBackToBackGames,
    ),
    RuleDefinition(
        id="first_last",
        name="Avoid having first and last game",
        description="Avoids teams and players being needed for both the start and the end of the event.",
        category="both",
        priority=4,
        rule_class=AvoidFirstAndLastGame,
    ),
    RuleDefinition(
        id="limit_venue_time",
        name="Limit venue time",
        description="Limits how long teams and players have to stay at the venue.",
        category="both",
        priority=2,
        rule_class=LimitVenueTime,
        parameters={
            "max_hours": RuleParameter(
                name="Maximum Hours at Venue", type="number", default=5, min=1, max=12, step=0.5,
                description="Maximum hours a player should be at the venue",
            ),
            "minutes_per_slot": RuleParameter(
                name="Minutes per Time Slot", type="number", default=40, min=15, max=120, step=15,
                description="Duration of each time slot in minutes",
            ),
        },
    ),
    RuleDefinition(
        id="mixed_divisions_timeslot",
        name="Detect mixed divisions in time slot",
        description="Detects time slots that host games from more than one division.",
        category="both",
        priority=2,
        rule_class=DetectMixedDivisionsInTimeSlot,
    ),

    # ===== TEAM RULES =====
    RuleDefinition(
        id="reffing_before",
        name="Avoid teams reffing before playing",
        description="Prevents teams from refereeing immediately before their own game.",
        category="team",
        priority=4,
        rule_class=AvoidReffingBeforePlaying,
    ),
    RuleDefinition(
        id="balance_referee",
        name="Balance referee assignments",
        description="Distributes referee duties fairly among teams.",
        category="team",
        priority=3,
        rule_class=BalanceRefereeAssignments,
        parameters={
            "max_referee_difference": RuleParameter(
                name="Max Referee Difference", type="number", default=1, min=0, max=3, step=1,
                description="Maximum allowed difference in referee assignments between teams",
            ),
        },
    ),
    RuleDefinition(
        id="fair_field_distribution",
        name="Ensure fair field distribution",
        description="Prevents teams from playing too many games on the same field.",
        category="team",
        priority=2,
        rule_class=EnsureFairFieldDistribution,
        parameters={
            "field_distribution_threshold": RuleParameter(
                name="Field Distribution Threshold", type="number", default=0.6, min=0.3, max=1.0, step=0.1,
                description="Maximum fraction of games a team can play on one field",
            ),
        },
    ),
    RuleDefinition(
        id="club_referee_conflict",
        name="Prevent club referee conflict",
        description="Prevents teams from refereeing while another team of their club plays in the same slot.",
        category="team",
        priority=3,
        rule_class=PreventClubRefereeConflict,
    ),

    # ===== PLAYER RULES =====
    RuleDefinition(
        id="manage_rest_and_gaps",
        name="Manage rest time and gaps",
        description="Ensures players rest between games without excessive waiting.",
        category="player",
        priority=1,
        rule_class=ManageRestTimeAndGaps,
        parameters={
            "min_rest_slots": RuleParameter(
                name="Minimum Rest Slots", type="number", default=2, min=1, max=10, step=1,
                description="Minimum number of time slots players must rest between games",
            ),
            "max_gap_slots": RuleParameter(
                name="Maximum Gap Slots", type="number", default=6, min=2, max=20, step=1,
                description="Maximum allowed gap between player games in time slots",
            ),
        },
    ),
    RuleDefinition(
        id="manage_player_game_balance",
        name="Manage player game balance",
        description="Limits individual game counts and keeps them even within divisions.",
        category="player",
        priority=1,
        rule_class=ManagePlayerGameBalance,
        parameters={
            "max_games": RuleParameter(
                name="Maximum Games", type="number", default=4, min=1, max=15, step=1,
                description="Maximum number of games a player can play",
            ),
            "max_game_difference": RuleParameter(
                name="Max Game Difference", type="number", default=1, min=0, max=5, step=1,
                description="Maximum allowed difference in game count between players",
            ),
        },
    ),
    RuleDefinition(
        id="warmup_time",
        name="Ensure player warm-up time",
        description="Ensures players have warm-up time before their first game of the day.",
        category="player",
        priority=1,
        rule_class=EnsurePlayerWarmupTime,
        enabled=False,
        parameters={
            "min_warmup_slots": RuleParameter(
                name="Minimum Warm-up Slots", type="number", default=1, min=0, max=5, step=1,
                description="Minimum time slots before first game for warm-up",
            ),
        },
    ),
]

# Old rule ids and the rule that replaced them
RULE_MIGRATION_MAP = {
    "player_back_to_back": "back_to_back",
    "player_first_last": "first_last",
    "limit_team_venue_time": "limit_venue_time",
    "player_rest_time": "manage_rest_and_gaps",
    "avoid_large_gaps": "manage_rest_and_gaps",
    "player_game_limit": "manage_player_game_balance",
    "balance_game_distribution": "manage_player_game_balance",
}


def get_rule_definition(rule_id: str) -> Optional[RuleDefinition]:
    for definition in RULES_REGISTRY:
        if definition.id == rule_id:
            return definition
    return None


def get_team_rules() -> List[RuleDefinition]:
    """Rules that apply to teams (including those that apply to both)."""
    return [rule for rule in RULES_REGISTRY if rule.category in ("team", "both")]


def get_player_rules() -> List[RuleDefinition]:
    """Rules that apply to players (including those that apply to both)."""
    return [rule for rule in RULES_REGISTRY if rule.category in ("player", "both")]


def get_default_rule_configurations() -> List[RuleConfiguration]:
    return [
        RuleConfiguration(
            id=rule.id,
            name=rule.name,
            type="builtin",
            enabled=rule.enabled,
            priority=rule.priority,
            category=rule.category,
            configured_params=rule.default_params() or None,
        )
        for rule in RULES_REGISTRY
    ]


def get_default_rules() -> List[ScheduleRule]:
    return create_rules_from_configurations(get_default_rule_configurations())


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _resolve_params(definition: RuleDefinition, configured: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Merge configured parameter values over the defaults of a rule definition.
    Keys may be given in snake_case or camelCase.
    """
    params = definition.default_params()
    for key, value in (configured or {}).items():
        name = _snake_case(key)
        if name not in definition.parameters:
            raise RuleConfigurationError(f"Unknown parameter '{key}' for rule '{definition.id}'")
        params[name] = definition.parameters[name].validate(value)
    return params


def create_rule_from_configuration(config) -> Optional[ScheduleRule]:
    """
    Create a live rule from a configuration entry.

    Args:
        config: RuleConfiguration or an equivalent dictionary

    Returns:
        Rule instance, or None if the entry is disabled or invalid (the problem is logged)
    """
    try:
        if not isinstance(config, RuleConfiguration):
            config = RuleConfiguration.model_validate(config)
    except ValueError as e:
        logger.warning(f"Skipping malformed rule configuration {config!r}: {e}")
        return None

    if config.type == "custom":
        if not config.enabled:
            return None
        try:
            return ScriptedRule(config.name or config.id, config.code or "", config.priority, rule_id=config.id)
        except RuleConfigurationError as e:
            logger.warning(f"Skipping custom rule '{config.id}': {e}")
            return None

    rule_id = config.base_rule_id if config.type == "duplicated" else config.id
    definition = get_rule_definition(rule_id or "")
    if definition is None:
        logger.warning(f"Skipping unknown builtin rule: {rule_id}")
        return None

    if not config.enabled:
        if not definition.critical:
            return None
        logger.info(f"Rule '{definition.id}' is critical and cannot be disabled; keeping it enabled")

    try:
        params = _resolve_params(definition, config.configured_params)
        priority = config.priority if config.priority is not None else definition.priority
        rule = definition.rule_class(priority=priority, **params)
    except RuleConfigurationError as e:
        logger.warning(f"Skipping rule '{config.id}': {e}")
        return None

    if config.type == "duplicated" and config.name:
        rule.name = config.name
    return rule


def create_rules_from_configurations(configs) -> List[ScheduleRule]:
    rules = []
    for config in configs:
        rule = create_rule_from_configuration(config)
        if rule is not None:
            rules.append(rule)
    return rules


def _as_configuration(config) -> RuleConfiguration:
    if isinstance(config, RuleConfiguration):
        return config
    return RuleConfiguration.model_validate(config)


def migrate_rule_configurations(configs) -> List[RuleConfiguration]:
    """
    Bring stored configurations up to date with the registry.

    Obsolete builtin ids are mapped to the rule that replaced them (or dropped when
    there is none); names and categories are refreshed from the registry. Custom and
    duplicated entries are kept as they are.
    """
    migrated = []
    processed = set()

    for config in map(_as_configuration, configs):
        if config.type != "builtin":
            migrated.append(config)
            continue

        new_id = RULE_MIGRATION_MAP.get(config.id, config.id)
        definition = get_rule_definition(new_id)
        if definition is None:
            logger.info(f"Removing obsolete rule: {config.id}")
            continue
        if new_id != config.id:
            if new_id in processed:
                logger.debug(f"Skipping duplicate migration: {config.id} -> {new_id}")
                continue
            logger.info(f"Migrating rule: {config.id} -> {new_id}")

        migrated.append(config.model_copy(update={
            "id": new_id,
            "name": definition.name,
            "category": definition.category,
        }))
        processed.add(new_id)

    return migrated


def deduplicate_rule_configurations(configs) -> List[RuleConfiguration]:
    seen = {}
    for config in map(_as_configuration, configs):
        if config.id in seen:
            logger.info(f"Removing duplicate rule: {config.id}")
            continue
        seen[config.id] = config
    return list(seen.values())


def merge_rule_configurations(existing) -> List[RuleConfiguration]:
    """Migrate and deduplicate stored configurations, then add any new default rules."""
    merged = deduplicate_rule_configurations(migrate_rule_configurations(existing))
    existing_ids = {config.id for config in merged}
    for default in get_default_rule_configurations():
        if default.id not in existing_ids:
            logger.info(f"Adding new default rule: {default.id}")
            merged.append(default)
    return merged
