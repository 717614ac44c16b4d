"""
Data model for the medal tally: grades, events, placements and snapshots.

Snapshot documents are validated here, on the way in, so the rest of the
package works with closed enumerations instead of ad hoc string lookups.
"""

import copy
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import SnapshotFormatError

DEFAULT_ICON = "fas fa-medal"
OTHER_SUBCATEGORY = "Other"
ATHLETICS_SUBCATEGORY = "Athletics"
MIXED_GENDER = "Mixed"

_GRADE_REFERENCE = re.compile(r"grade[\s_-]*(\d+)")


class GradeId(str, Enum):
    """Closed set of grade levels taking part in the meet."""

    GRADE_7 = "grade-7"
    GRADE_8 = "grade-8"
    GRADE_9 = "grade-9"
    GRADE_10 = "grade-10"

    @property
    def default_name(self) -> str:
        return "Grade " + self.value.split("-", 1)[1]

    @classmethod
    def resolve(cls, reference: Any) -> Optional["GradeId"]:
        """
        Resolve a grade reference to a grade id.

        Accepts the id itself ("grade-7") or the display name the admin panel
        used to store in results ("Grade 7").

        @param reference: Grade id, display name or GradeId member
        @return: Matching GradeId, None if the reference names no known grade
        """
        if isinstance(reference, cls):
            return reference
        if not isinstance(reference, str):
            return None

        match = _GRADE_REFERENCE.fullmatch(reference.strip().lower())
        if not match:
            return None

        try:
            return cls(f"grade-{int(match.group(1))}")
        except ValueError:
            return None


class Medal(str, Enum):
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"

    @property
    def position(self) -> int:
        return MEDAL_POSITIONS.index(self) + 1

    @classmethod
    def from_position(cls, position: Any) -> Optional["Medal"]:
        if isinstance(position, bool) or not isinstance(position, int):
            return None
        if 1 <= position <= len(MEDAL_POSITIONS):
            return MEDAL_POSITIONS[position - 1]
        return None


MEDAL_POSITIONS = (Medal.GOLD, Medal.SILVER, Medal.BRONZE)


class Category(str, Enum):
    """Event categories used for filtering the results tabs."""

    TEAM_SPORTS = "Team Sports"
    ATHLETICS = "Athletics"
    INDIVIDUAL_DUAL = "Individual/Dual Sports"
    E_SPORTS = "E-Sports"
    MARTIAL_ARTS = "Martial Arts"
    CREATIVE_ARTS = "Creative Arts"

    @classmethod
    def parse(cls, label: Any) -> "Category":
        """
        Parse a category label from a snapshot document.

        @param label: Category label as stored in the document
        @return: Matching Category
        @raise SnapshotFormatError: If the label is not a known category
        """
        if isinstance(label, cls):
            return label
        if isinstance(label, str):
            label = label.strip()
            if label in _CATEGORY_ALIASES:
                return _CATEGORY_ALIASES[label]
            try:
                return cls(label)
            except ValueError:
                pass
        raise SnapshotFormatError("Unknown event category", {"category": label})


# Older data files filed athletics and dual sports under "Individual Sports"
_CATEGORY_ALIASES = {"Individual Sports": Category.INDIVIDUAL_DUAL}


class CategoryFilter(str, Enum):
    """Results tab selection; ALL means no filtering."""

    ALL = "all"
    TEAM_SPORTS = "team-sports"
    ATHLETICS = "athletics"
    INDIVIDUAL_DUAL = "individual-dual-sports"
    E_SPORTS = "e-sports"
    MARTIAL_ARTS = "martial-arts"
    CREATIVE_ARTS = "creative-arts"

    @property
    def category(self) -> Optional[Category]:
        return _FILTER_CATEGORIES.get(self)

    @classmethod
    def parse(cls, slug: Any) -> Optional["CategoryFilter"]:
        if isinstance(slug, cls):
            return slug
        if not isinstance(slug, str):
            return None
        slug = slug.strip().lower()
        if slug in _FILTER_ALIASES:
            return _FILTER_ALIASES[slug]
        try:
            return cls(slug)
        except ValueError:
            return None


_FILTER_CATEGORIES = {
    CategoryFilter.TEAM_SPORTS: Category.TEAM_SPORTS,
    CategoryFilter.ATHLETICS: Category.ATHLETICS,
    CategoryFilter.INDIVIDUAL_DUAL: Category.INDIVIDUAL_DUAL,
    CategoryFilter.E_SPORTS: Category.E_SPORTS,
    CategoryFilter.MARTIAL_ARTS: Category.MARTIAL_ARTS,
    CategoryFilter.CREATIVE_ARTS: Category.CREATIVE_ARTS,
}

# The public leaderboard called the athletics tab "individual-sports"
_FILTER_ALIASES = {"individual-sports": CategoryFilter.ATHLETICS}


# ----------------------------------------------------------------------
# Timestamps
# ----------------------------------------------------------------------

def format_timestamp(moment: datetime) -> str:
    """Render a datetime the way browsers render Date.toISOString()."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (
        moment.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def utc_now_iso() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


# ----------------------------------------------------------------------
# Validation helpers
# ----------------------------------------------------------------------

def _require_mapping(value: Any, where: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise SnapshotFormatError("Expected an object", {"field": where})
    return value


def _require_int(value: Any, where: str, minimum: int) -> int:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise SnapshotFormatError(
            f"Expected an integer >= {minimum}", {"field": where, "value": value}
        )
    return value


def _optional_str(value: Any, where: str) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise SnapshotFormatError("Expected a string", {"field": where})
    return value


# ----------------------------------------------------------------------
# Entities
# ----------------------------------------------------------------------

@dataclass
class Grade:
    grade_id: GradeId
    name: str
    gold: int = 0
    silver: int = 0
    bronze: int = 0

    @property
    def total_medals(self) -> int:
        return self.gold + self.silver + self.bronze

    def count(self, medal: Medal) -> int:
        return getattr(self, medal.value)

    def to_document(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "gold": self.gold,
            "silver": self.silver,
            "bronze": self.bronze,
        }

    @classmethod
    def from_document(cls, grade_id: GradeId, doc: Any) -> "Grade":
        doc = _require_mapping(doc, f"grades.{grade_id.value}")
        where = f"grades.{grade_id.value}"
        return cls(
            grade_id=grade_id,
            name=_optional_str(doc.get("name"), f"{where}.name") or grade_id.default_name,
            gold=_require_int(doc.get("gold", 0), f"{where}.gold", 0),
            silver=_require_int(doc.get("silver", 0), f"{where}.silver", 0),
            bronze=_require_int(doc.get("bronze", 0), f"{where}.bronze", 0),
        )


@dataclass
class MedalValues:
    """Point weight awarded per medal kind."""

    gold: int = 3
    silver: int = 2
    bronze: int = 1

    def value_of(self, medal: Medal) -> int:
        return getattr(self, medal.value)

    def to_document(self) -> Dict[str, int]:
        return {"gold": self.gold, "silver": self.silver, "bronze": self.bronze}

    @classmethod
    def from_document(cls, doc: Any) -> "MedalValues":
        doc = _require_mapping(doc, "medalValues")
        defaults = cls()
        return cls(
            **{
                medal.value: _require_int(
                    doc.get(medal.value, defaults.value_of(medal)),
                    f"medalValues.{medal.value}",
                    1,
                )
                for medal in Medal
            }
        )


@dataclass(frozen=True)
class PlacementRecord:
    """A finishing position and the grade reference that took it."""

    position: int
    grade: str

    @property
    def medal(self) -> Optional[Medal]:
        return Medal.from_position(self.position)

    @property
    def grade_id(self) -> Optional[GradeId]:
        return GradeId.resolve(self.grade)

    def to_document(self) -> Dict[str, Any]:
        return {"position": self.position, "grade": self.grade}

    @classmethod
    def from_document(cls, doc: Any, where: str) -> "PlacementRecord":
        doc = _require_mapping(doc, where)
        position = doc.get("position")
        if isinstance(position, str) and position.strip().isdigit():
            position = int(position)
        if Medal.from_position(position) is None:
            raise SnapshotFormatError(
                "Placement position must be 1, 2 or 3",
                {"field": f"{where}.position", "value": position},
            )

        grade = doc.get("grade")
        if not isinstance(grade, str) or not grade.strip():
            raise SnapshotFormatError("Placement grade is missing", {"field": f"{where}.grade"})

        # Unknown grade references are kept verbatim; aggregation skips them
        grade_id = GradeId.resolve(grade)
        return cls(position=position, grade=grade_id.value if grade_id else grade.strip())


@dataclass
class Event:
    """A contested event ("sport" in the UI) and its placements."""

    event_id: str
    name: str
    category: Category
    subcategory: Optional[str] = None
    gender: Optional[str] = None
    icon: str = DEFAULT_ICON
    results: List[PlacementRecord] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        """An event is completed once any position has been filled."""
        return len(self.results) > 0

    @property
    def group_label(self) -> str:
        return self.subcategory or OTHER_SUBCATEGORY

    @property
    def display_name(self) -> str:
        if self.gender and self.gender != MIXED_GENDER:
            return f"{self.name} ({self.gender})"
        return self.name

    def placement_at(self, position: int) -> Optional[PlacementRecord]:
        for record in self.results:
            if record.position == position:
                return record
        return None

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "name": self.name,
            "category": self.category.value,
        }
        if self.subcategory:
            doc["subcategory"] = self.subcategory
        if self.gender:
            doc["gender"] = self.gender
        doc["icon"] = self.icon
        doc["results"] = [record.to_document() for record in self.results]
        return doc

    @classmethod
    def from_document(cls, event_id: str, doc: Any) -> "Event":
        where = f"sports.{event_id}"
        doc = _require_mapping(doc, where)

        name = _optional_str(doc.get("name"), f"{where}.name") or event_id
        raw_results = doc.get("results") or []
        if not isinstance(raw_results, list):
            raise SnapshotFormatError("Expected a list", {"field": f"{where}.results"})

        # At most one record per position; the first one wins
        results: List[PlacementRecord] = []
        taken = set()
        for index, raw in enumerate(raw_results):
            record = PlacementRecord.from_document(raw, f"{where}.results[{index}]")
            if record.position in taken:
                continue
            taken.add(record.position)
            results.append(record)

        return cls(
            event_id=event_id,
            name=name,
            category=Category.parse(doc.get("category")),
            subcategory=_optional_str(doc.get("subcategory"), f"{where}.subcategory"),
            gender=_optional_str(doc.get("gender"), f"{where}.gender"),
            icon=_optional_str(doc.get("icon"), f"{where}.icon") or DEFAULT_ICON,
            results=results,
        )


@dataclass
class Snapshot:
    """
    The aggregate root: everything that is persisted and replicated.

    Grade and event maps keep insertion order, which is the order used for
    display and for stable tie handling in the standings.
    """

    grades: Dict[GradeId, Grade] = field(default_factory=dict)
    sports: Dict[str, Event] = field(default_factory=dict)
    medal_values: MedalValues = field(default_factory=MedalValues)
    last_updated: Optional[str] = None

    @property
    def updated_at(self) -> Optional[datetime]:
        return parse_timestamp(self.last_updated)

    def copy(self) -> "Snapshot":
        return copy.deepcopy(self)

    def is_newer_than(self, other: Optional["Snapshot"]) -> bool:
        """
        Check whether this snapshot was modified strictly after another one.

        @param other: Snapshot to compare against (None counts as oldest)
        @return: True only when this snapshot's timestamp is strictly later
        """
        mine = self.updated_at
        if mine is None:
            return False
        if other is None or other.updated_at is None:
            return True
        return mine > other.updated_at

    def to_document(self) -> Dict[str, Any]:
        return {
            "grades": {
                grade_id.value: grade.to_document()
                for grade_id, grade in self.grades.items()
            },
            "sports": {
                event_id: event.to_document()
                for event_id, event in self.sports.items()
            },
            "medalValues": self.medal_values.to_document(),
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_document(cls, doc: Any) -> "Snapshot":
        """
        Build a snapshot from its persisted document form.

        @param doc: Decoded JSON document
        @return: Validated Snapshot
        @raise SnapshotFormatError: If any part of the document is malformed
        """
        doc = _require_mapping(doc, "snapshot")

        grades: Dict[GradeId, Grade] = {}
        for key, grade_doc in _require_mapping(doc.get("grades"), "grades").items():
            grade_id = GradeId.resolve(key)
            if grade_id is None:
                raise SnapshotFormatError("Unknown grade id", {"grade": key})
            grades[grade_id] = Grade.from_document(grade_id, grade_doc)

        sports: Dict[str, Event] = {}
        for event_id, event_doc in _require_mapping(doc.get("sports") or {}, "sports").items():
            sports[str(event_id)] = Event.from_document(str(event_id), event_doc)

        medal_values = (
            MedalValues.from_document(doc["medalValues"])
            if doc.get("medalValues") is not None
            else MedalValues()
        )

        last_updated = doc.get("lastUpdated")
        if last_updated is not None and not isinstance(last_updated, str):
            raise SnapshotFormatError("Expected an ISO-8601 string", {"field": "lastUpdated"})

        return cls(
            grades=grades,
            sports=sports,
            medal_values=medal_values,
            last_updated=last_updated,
        )


def default_snapshot(medal_values: Optional[MedalValues] = None) -> Snapshot:
    """
    Build the hard-coded fallback snapshot.

    @param medal_values: Point weights to use (default 3/2/1)
    @return: Snapshot with every grade at zero medals and no events
    """
    return Snapshot(
        grades={
            grade_id: Grade(grade_id=grade_id, name=grade_id.default_name)
            for grade_id in GradeId
        },
        sports={},
        medal_values=copy.copy(medal_values) if medal_values else MedalValues(),
        last_updated=utc_now_iso(),
    )
