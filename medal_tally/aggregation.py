"""
Medal aggregation and ranking.

Every function here is pure: it takes a Snapshot and returns a new one (or a
derived list) without modifying its input. The state store is the only
caller that swaps the result in as the canonical snapshot.
"""

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .exceptions import (
    InvalidMedalValueError,
    InvalidPlacementError,
    UnknownCategoryError,
    UnknownEventError,
    UnknownGradeError,
)
from .logger import get_logger
from .models import (
    ATHLETICS_SUBCATEGORY,
    Category,
    CategoryFilter,
    Event,
    GradeId,
    Medal,
    MedalValues,
    PlacementRecord,
    Snapshot,
)

log = get_logger("medal_tally.aggregation")

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass(frozen=True)
class Standing:
    """One grade's line in the overall standings."""

    grade_id: GradeId
    name: str
    gold: int
    silver: int
    bronze: int
    total_score: int
    total_medals: int

    @property
    def sort_key(self) -> Tuple[int, int, int, int]:
        return (-self.total_score, -self.gold, -self.silver, -self.bronze)


# ----------------------------------------------------------------------
# Placement-derived counts
# ----------------------------------------------------------------------

def recompute_medals_from_placements(snapshot: Snapshot) -> Snapshot:
    """
    Rebuild every grade's medal counts from the events' placement records.

    Counts are zeroed first, so the result depends only on the placements.
    Records naming an unknown grade are skipped.

    @param snapshot: Snapshot to derive counts for
    @return: New snapshot with recomputed gold/silver/bronze counts
    """
    result = snapshot.copy()
    for grade in result.grades.values():
        grade.gold = 0
        grade.silver = 0
        grade.bronze = 0

    for event in result.sports.values():
        for record in event.results:
            medal = record.medal
            grade_id = record.grade_id
            grade = result.grades.get(grade_id) if grade_id is not None else None
            if medal is None or grade is None:
                log.debug(
                    "Skipping placement %s=%r in %s: no such grade",
                    record.position,
                    record.grade,
                    event.event_id,
                )
                continue
            setattr(grade, medal.value, grade.count(medal) + 1)

    return result


def compute_standings(snapshot: Snapshot) -> List[Standing]:
    """
    Rank grades by total score, then gold, silver and bronze counts.

    Grades that tie on all four keep their grade-map order.

    @param snapshot: Snapshot to rank
    @return: Standings, best first
    """
    values = snapshot.medal_values
    standings = [
        Standing(
            grade_id=grade.grade_id,
            name=grade.name,
            gold=grade.gold,
            silver=grade.silver,
            bronze=grade.bronze,
            total_score=sum(grade.count(medal) * values.value_of(medal) for medal in Medal),
            total_medals=grade.total_medals,
        )
        for grade in snapshot.grades.values()
    ]
    return sorted(standings, key=lambda standing: standing.sort_key)


def _coerce_position(position: Any) -> Medal:
    if isinstance(position, str) and position.strip().isdigit():
        position = int(position)
    medal = Medal.from_position(position)
    if medal is None:
        raise InvalidPlacementError(
            "Placement position must be 1, 2 or 3", {"position": position}
        )
    return medal


def _grade_reference(grade: Any) -> Optional[str]:
    if grade is None:
        return None
    if isinstance(grade, GradeId):
        return grade.value
    reference = str(grade).strip()
    if not reference:
        return None
    grade_id = GradeId.resolve(reference)
    return grade_id.value if grade_id else reference


def _require_event(snapshot: Snapshot, event_id: str) -> None:
    if event_id not in snapshot.sports:
        raise UnknownEventError("No such event", {"event": event_id})


def set_placement(
    snapshot: Snapshot,
    event_id: str,
    position: Union[int, str],
    grade: Union[GradeId, str, None] = None,
) -> Snapshot:
    """
    Set or clear the grade holding a position in an event.

    An existing record at the position is replaced, never duplicated. An
    empty grade leaves the position unfilled. Medal counts are recomputed.

    @param snapshot: Current snapshot
    @param event_id: Event to update
    @param position: 1 (gold), 2 (silver) or 3 (bronze)
    @param grade: Grade id or display name, None or "" to clear
    @return: New snapshot with the placement applied
    """
    medal = _coerce_position(position)
    _require_event(snapshot, event_id)

    result = snapshot.copy()
    event = result.sports[event_id]
    event.results = [record for record in event.results if record.position != medal.position]

    reference = _grade_reference(grade)
    if reference is not None:
        event.results.append(PlacementRecord(position=medal.position, grade=reference))

    return recompute_medals_from_placements(result)


def clear_placements(snapshot: Snapshot, event_id: str) -> Snapshot:
    """Remove every placement of an event and recompute counts."""
    _require_event(snapshot, event_id)

    result = snapshot.copy()
    result.sports[event_id].results = []
    return recompute_medals_from_placements(result)


# ----------------------------------------------------------------------
# Category grouping
# ----------------------------------------------------------------------

def parse_category_filter(category_filter: Union[CategoryFilter, str, None]) -> CategoryFilter:
    if category_filter is None:
        return CategoryFilter.ALL
    parsed = CategoryFilter.parse(category_filter)
    if parsed is None:
        raise UnknownCategoryError("No such category", {"category": category_filter})
    return parsed


def matches_filter(event: Event, category_filter: CategoryFilter) -> bool:
    if category_filter is CategoryFilter.ALL:
        return True
    # Athletics events are filed under another category, so match on subcategory
    if category_filter is CategoryFilter.ATHLETICS:
        return event.subcategory == ATHLETICS_SUBCATEGORY
    if category_filter is CategoryFilter.INDIVIDUAL_DUAL:
        return (
            event.category is Category.INDIVIDUAL_DUAL
            and event.subcategory != ATHLETICS_SUBCATEGORY
        )
    return event.category is category_filter.category


def group_by_category(
    events: Union[Iterable[Event], Mapping],
    category_filter: Union[CategoryFilter, str, None] = CategoryFilter.ALL,
) -> Dict[str, List[Event]]:
    """
    Filter events by a results tab and group them by subcategory.

    @param events: Events, or a mapping of event id to Event
    @param category_filter: Tab selection (CategoryFilter or its slug)
    @return: Subcategory label -> events, both in first-seen order
    """
    selected = parse_category_filter(category_filter)
    if isinstance(events, Mapping):
        events = events.values()

    groups: Dict[str, List[Event]] = {}
    for event in events:
        if matches_filter(event, selected):
            groups.setdefault(event.group_label, []).append(event)
    return groups


# ----------------------------------------------------------------------
# Manual overrides
#
# These write grade counts directly and do not consult placements. The next
# placement change or recompute replaces whatever was entered here.
# ----------------------------------------------------------------------

def coerce_count(raw: Any) -> int:
    """
    Turn user input into a medal count.

    Integers pass through, strings are read up to their first non-digit
    ("12abc" is 12), anything unreadable or negative becomes 0.
    """
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return max(raw, 0)
    if isinstance(raw, float):
        return max(int(raw), 0) if math.isfinite(raw) else 0
    if isinstance(raw, str):
        match = _LEADING_INT.match(raw)
        return max(int(match.group(1)), 0) if match else 0
    return 0


def parse_medal(medal: Union[Medal, str]) -> Medal:
    try:
        return Medal(medal.strip().lower() if isinstance(medal, str) else medal)
    except ValueError:
        raise InvalidPlacementError("Medal must be gold, silver or bronze", {"medal": medal})


def _require_grade(snapshot: Snapshot, grade: Union[GradeId, str]) -> GradeId:
    grade_id = GradeId.resolve(grade)
    if grade_id is None or grade_id not in snapshot.grades:
        raise UnknownGradeError("No such grade", {"grade": grade})
    return grade_id


def set_medal_count(
    snapshot: Snapshot,
    grade: Union[GradeId, str],
    medal: Union[Medal, str],
    raw_value: Any,
) -> Snapshot:
    grade_id = _require_grade(snapshot, grade)
    kind = parse_medal(medal)

    result = snapshot.copy()
    setattr(result.grades[grade_id], kind.value, coerce_count(raw_value))
    return result


def add_medal(
    snapshot: Snapshot,
    grade: Union[GradeId, str],
    medal: Union[Medal, str],
) -> Snapshot:
    grade_id = _require_grade(snapshot, grade)
    kind = parse_medal(medal)

    result = snapshot.copy()
    target = result.grades[grade_id]
    setattr(target, kind.value, target.count(kind) + 1)
    return result


def reset_grade(snapshot: Snapshot, grade: Union[GradeId, str]) -> Snapshot:
    grade_id = _require_grade(snapshot, grade)

    result = snapshot.copy()
    target = result.grades[grade_id]
    target.gold = 0
    target.silver = 0
    target.bronze = 0
    return result


def reset_all(snapshot: Snapshot) -> Snapshot:
    """Zero every grade and clear every event's placements."""
    result = snapshot.copy()
    for event in result.sports.values():
        event.results = []
    return recompute_medals_from_placements(result)


def with_medal_values(
    snapshot: Snapshot,
    gold: Any = None,
    silver: Any = None,
    bronze: Any = None,
) -> Snapshot:
    """
    Replace point weights; None keeps the current weight.

    @raise InvalidMedalValueError: If a weight is not a positive integer
    """
    current = snapshot.medal_values
    updates = {"gold": gold, "silver": silver, "bronze": bronze}

    weights = {}
    for name, raw in updates.items():
        if raw is None or raw == "":
            weights[name] = getattr(current, name)
            continue
        if isinstance(raw, str) and raw.strip().isdigit():
            raw = int(raw)
        if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
            raise InvalidMedalValueError(
                "Medal value must be a positive integer", {"medal": name, "value": raw}
            )
        weights[name] = raw

    result = snapshot.copy()
    result.medal_values = MedalValues(**weights)
    return result
