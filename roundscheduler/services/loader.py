"""
In-memory construction of teams and schedules from row data.

Rows are plain lists or dictionaries, as produced by a JSON payload or a parsed
table. This module resolves team names to Team objects; everything downstream
assumes those references are valid.
"""

from collections import OrderedDict
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from roundscheduler.models import ActivityType, Division, Match, Player, Schedule, Team, TeamsMap
from roundscheduler.core.config import ACTIVITY_PLACEHOLDER, DIVISION_LOOKUP_ORDER
from roundscheduler.core.exceptions import ScheduleImportError
from roundscheduler.core.logging_config import get_logger

logger = get_logger(__name__)

MATCH_COLUMNS = ("time_slot", "division", "field", "team1", "team2", "referee", "locked")


def parse_division(value: Union[str, Division]) -> Division:
    if isinstance(value, Division):
        return value
    try:
        return Division(str(value).strip().lower())
    except ValueError:
        raise ScheduleImportError(
            f"Unknown division '{value}' (expected one of: {', '.join(d.value for d in Division)})"
        ) from None


def players_from_rows(rows: Iterable[Union[Sequence, Mapping]]) -> List[Player]:
    """
    Build players from [name, mixed team, gendered team, cloth team] rows or from
    dictionaries with the same keys. Rows without a name are skipped.
    """
    players = []
    for row in rows:
        if isinstance(row, Mapping):
            row = [row.get("name"), row.get("mixed_team"), row.get("gendered_team"), row.get("cloth_team")]
        player = Player.from_row(list(row))
        if player.name:
            players.append(player)
    return players


def create_teams_from_players(players: Iterable[Player]) -> TeamsMap:
    """Group players into teams, one map of team name to Team per division."""
    rosters: Dict[Division, "OrderedDict[str, List[Player]]"] = {division: OrderedDict() for division in Division}
    for player in players:
        for division in Division:
            team_name = player.team_for(division)
            if team_name:
                rosters[division].setdefault(team_name, []).append(player)

    return {
        division: {name: Team(name, division, tuple(members)) for name, members in teams.items()}
        for division, teams in rosters.items()
    }


def find_team_across_divisions(team_name: str, teams_map: TeamsMap,
                               preferred: Optional[Union[str, Division]] = None) -> Optional[Team]:
    """
    Look up a team by name when its division is not known (referees may come from
    another division).

    Ties between same-named teams are broken by checking the preferred division
    first, then the configured lookup order.
    """
    order = []
    if preferred is not None:
        order.append(parse_division(preferred))
    for name in DIVISION_LOOKUP_ORDER:
        division = parse_division(name)
        if division not in order:
            order.append(division)
    for division in Division:
        if division not in order:
            order.append(division)

    for division in order:
        team = teams_map.get(division, {}).get(team_name)
        if team is not None:
            return team
    return None


def _cell(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _row_values(row: Union[Sequence, Mapping]) -> Dict[str, Any]:
    if isinstance(row, Mapping):
        values = dict(row)
        if "referee" not in values and "referee_team" in values:
            values["referee"] = values["referee_team"]
        return values
    return dict(zip(MATCH_COLUMNS, row))


def _parse_slot(value: Any, index: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ScheduleImportError(f"Row {index + 1}: invalid time slot {value!r}") from None


def _parse_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "locked")
    return bool(value)


def create_activity(activity_type: Union[str, ActivityType], time_slot: int, field: str,
                    division: Union[str, Division] = Division.MIXED, team: Optional[Team] = None) -> Match:
    """
    Build a setup or packing-down activity occupying a slot and field.

    Args:
        activity_type: SETUP or PACKING_DOWN
        team: Team doing the work; None leaves the activity unassigned
    """
    if not isinstance(activity_type, ActivityType):
        try:
            activity_type = ActivityType(str(activity_type).strip().upper().replace(" ", "_"))
        except ValueError:
            raise ScheduleImportError(f"Unknown activity type '{activity_type}'") from None
    if activity_type == ActivityType.REGULAR:
        raise ScheduleImportError("Activities must be SETUP or PACKING_DOWN")
    division = parse_division(division)
    placeholder = Team(ACTIVITY_PLACEHOLDER, division)
    return Match(
        team1=team or placeholder,
        team2=placeholder,
        time_slot=time_slot,
        field=field,
        division=division,
        activity_type=activity_type,
        locked=True,
    )


def create_matches_from_rows(rows: Iterable[Union[Sequence, Mapping]], teams_map: TeamsMap) -> List[Match]:
    """
    Build matches from [time slot, division, field, team1, team2, referee, locked]
    rows (or dictionaries with those keys, plus an optional activity_type).

    Playing teams must exist in the match division. A referee is looked up across
    divisions and created, without players, in the match division when unknown.

    Raises:
        ScheduleImportError: For unknown playing teams, divisions or bad slots
    """
    matches = []
    for index, row in enumerate(rows):
        values = _row_values(row)
        time_slot = _parse_slot(values.get("time_slot"), index)
        division = parse_division(values.get("division", ""))
        field = _cell(values.get("field")) or ""
        locked = _parse_flag(values.get("locked"))
        team1_name = _cell(values.get("team1"))
        team2_name = _cell(values.get("team2"))
        referee_name = _cell(values.get("referee"))
        division_teams = teams_map.setdefault(division, {})

        activity = _cell(values.get("activity_type"))
        if activity and activity.upper() != ActivityType.REGULAR.value:
            team = division_teams.get(team1_name) if team1_name else None
            if team1_name and team is None:
                team = find_team_across_divisions(team1_name, teams_map, division)
            match = create_activity(activity, time_slot, field, division, team)
            matches.append(match)
            continue

        team1 = division_teams.get(team1_name)
        team2 = division_teams.get(team2_name)
        if team1 is None or team2 is None:
            missing = [name or "<blank>" for name, team in ((team1_name, team1), (team2_name, team2)) if team is None]
            raise ScheduleImportError(
                f"Row {index + 1}: teams not found in division {division.value}: {', '.join(missing)}"
            )

        referee = None
        if referee_name:
            referee = find_team_across_divisions(referee_name, teams_map, division)
            if referee is None:
                referee = Team(referee_name, division)
                division_teams[referee_name] = referee
                logger.info(f"Created referee team '{referee_name}' in division {division.value}")

        matches.append(Match(
            team1=team1,
            team2=team2,
            time_slot=time_slot,
            field=field,
            division=division,
            referee_team=referee,
            locked=locked,
        ))
    return matches


def create_division_blocks(matches: Sequence[Match], division_order: Union[str, Sequence[str]]) -> List[Match]:
    """
    Reorder a schedule into consecutive blocks, one division after another.

    Matches that shared a slot within a division still share one. Setup
    activities keep their slot, packing down moves after the last block, and
    divisions missing from the order are placed after the listed ones.

    Returns:
        New Match objects; the input is not modified
    """
    if isinstance(division_order, str):
        division_order = division_order.split(",")
    order = []
    for name in division_order:
        if name.strip():
            division = parse_division(name)
            if division not in order:
                order.append(division)
    order.extend(division for division in Division if division not in order)

    regular = [m for m in matches if not m.is_special_activity()]
    setup = [m for m in matches if m.activity_type == ActivityType.SETUP]
    packdown = [m for m in matches if m.activity_type == ActivityType.PACKING_DOWN]
    if not regular:
        return [replace(m) for m in matches]

    next_slot = min(m.time_slot for m in regular)
    blocks = []
    for division in order:
        division_matches = sorted((m for m in regular if m.division == division), key=lambda m: m.time_slot)
        slot_map = {}
        for match in division_matches:
            if match.time_slot not in slot_map:
                slot_map[match.time_slot] = next_slot
                next_slot += 1
            blocks.append(replace(match, time_slot=slot_map[match.time_slot]))

    return (
        [replace(m) for m in setup]
        + blocks
        + [replace(m, time_slot=next_slot) for m in packdown]
    )


def load_schedule_payload(payload: Mapping[str, Any]) -> Tuple[TeamsMap, Schedule]:
    """
    Build teams and a schedule from a JSON-style payload::

        {
            "players": [["Alice", "Mixed A", "Girls A", null], ...],
            "teams": {"mixed": ["Mixed A", ...]},
            "matches": [[1, "mixed", "Court 1", "Mixed A", "Mixed B", "Mixed C"], ...]
        }

    "teams" is optional and adds teams that have no players listed.
    """
    teams_map = create_teams_from_players(players_from_rows(payload.get("players") or []))
    for division_name, team_names in (payload.get("teams") or {}).items():
        division = parse_division(division_name)
        division_teams = teams_map.setdefault(division, {})
        for team_name in team_names:
            division_teams.setdefault(team_name, Team(team_name, division))

    matches = create_matches_from_rows(payload.get("matches") or [], teams_map)
    schedule = Schedule(matches=matches)
    logger.info(f"Loaded schedule with {len(matches)} matches")
    return teams_map, schedule
