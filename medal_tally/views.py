"""
Render-data builders for the leaderboard and admin pages.

Pure functions over a Snapshot; nothing here mutates state.
"""

from dataclasses import asdict, dataclass, field
from datetime import timezone
from typing import Any, Dict, List, Optional, Union

from .aggregation import compute_standings, group_by_category, parse_category_filter
from .models import CategoryFilter, Event, GradeId, Medal, Snapshot

PENDING_PLACEHOLDER = "TBD"

RANK_CLASSES = {1: "first-place", 2: "second-place", 3: "third-place"}
RANK_ICONS = {1: "fas fa-crown", 2: "fas fa-medal", 3: "fas fa-award"}

SECTION_INFO = {
    CategoryFilter.ALL: ("Overall Medal Tally", "Grades 7-10 Medal Rankings"),
    CategoryFilter.TEAM_SPORTS: (
        "Team Sports Results",
        "Basketball, Volleyball, Futsal, Sepak Takraw",
    ),
    CategoryFilter.ATHLETICS: ("Athletics Results", "Track and Field Events"),
    CategoryFilter.INDIVIDUAL_DUAL: (
        "Individual/Dual Sports Results",
        "Arnis, Badminton, Table Tennis, Chess, Scrabble",
    ),
    CategoryFilter.E_SPORTS: (
        "E-Sports Results",
        "Mobile Legends, CODM, Tekken 7, Valorant",
    ),
    CategoryFilter.MARTIAL_ARTS: (
        "Martial Arts Results",
        "Arnis, Boxing, Taekwondo, Wrestling",
    ),
    CategoryFilter.CREATIVE_ARTS: (
        "Creative Arts Results",
        "Banner Art, Banderitas Making Contest",
    ),
}


@dataclass
class StandingRow:
    rank: int
    rank_class: str
    rank_icon: str
    grade_id: str
    name: str
    gold: int
    silver: int
    bronze: int
    total_medals: int
    total_score: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EventCard:
    event_id: str
    name: str
    display_name: str
    icon: str
    subcategory: str
    completed: bool
    winners: Dict[str, str] = field(default_factory=dict)

    @property
    def status(self) -> str:
        return "completed" if self.completed else "pending"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status
        return data


@dataclass
class SubcategoryGroup:
    name: str
    events: List[EventCard] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "events": [card.to_dict() for card in self.events]}


@dataclass
class CategoryView:
    category: str
    title: str
    description: str
    groups: List[SubcategoryGroup] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.groups

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "groups": [group.to_dict() for group in self.groups],
        }


def section_info(category_filter: Union[CategoryFilter, str, None]) -> Dict[str, str]:
    selected = parse_category_filter(category_filter)
    title, description = SECTION_INFO[selected]
    return {"title": title, "description": description}


def build_standings_view(snapshot: Snapshot) -> List[StandingRow]:
    """
    Build the overall standings table.

    Ranks follow standings order; the top three rows carry distinguished
    rank classes and icons.

    @param snapshot: Snapshot to render
    @return: One row per grade, best first
    """
    rows = []
    for rank, standing in enumerate(compute_standings(snapshot), 1):
        rows.append(
            StandingRow(
                rank=rank,
                rank_class=RANK_CLASSES.get(rank, ""),
                rank_icon=RANK_ICONS.get(rank, ""),
                grade_id=standing.grade_id.value,
                name=standing.name,
                gold=standing.gold,
                silver=standing.silver,
                bronze=standing.bronze,
                total_medals=standing.total_medals,
                total_score=standing.total_score,
            )
        )
    return rows


def _winner_label(snapshot: Snapshot, reference: str) -> str:
    grade_id = GradeId.resolve(reference)
    grade = snapshot.grades.get(grade_id) if grade_id is not None else None
    return grade.name if grade else reference


def build_event_card(snapshot: Snapshot, event: Event) -> EventCard:
    winners: Dict[str, str] = {}
    if event.completed:
        for medal in Medal:
            record = event.placement_at(medal.position)
            winners[medal.value] = (
                _winner_label(snapshot, record.grade) if record else PENDING_PLACEHOLDER
            )

    return EventCard(
        event_id=event.event_id,
        name=event.name,
        display_name=event.display_name,
        icon=event.icon,
        subcategory=event.group_label,
        completed=event.completed,
        winners=winners,
    )


def build_category_view(
    snapshot: Snapshot,
    category: Union[CategoryFilter, str, None] = CategoryFilter.ALL,
) -> CategoryView:
    """
    Build the results tab for a category.

    Events are grouped by subcategory. Completed events list the winning
    grade at each position ("TBD" where unfilled); pending events list none.

    @param snapshot: Snapshot to render
    @param category: Tab selection (CategoryFilter or slug)
    @return: CategoryView with section title, description and groups
    @raise UnknownCategoryError: If the slug names no tab
    """
    selected = parse_category_filter(category)
    info = section_info(selected)

    groups = [
        SubcategoryGroup(
            name=name,
            events=[build_event_card(snapshot, event) for event in events],
        )
        for name, events in group_by_category(snapshot.sports, selected).items()
    ]

    return CategoryView(
        category=selected.value,
        title=info["title"],
        description=info["description"],
        groups=groups,
    )


def build_stats(snapshot: Snapshot) -> Dict[str, int]:
    return {
        "total_grades": len(snapshot.grades),
        "total_events": len(snapshot.sports),
        "completed_events": sum(1 for event in snapshot.sports.values() if event.completed),
        "gold_value": snapshot.medal_values.gold,
    }


def format_last_updated(snapshot: Snapshot) -> str:
    moment = snapshot.updated_at
    if moment is None:
        return "Unknown"
    return moment.astimezone(timezone.utc).strftime("%b %d, %Y %H:%M UTC")


def build_admin_rows(snapshot: Snapshot) -> List[Dict[str, Any]]:
    """Grade rows for the admin medal editor, in grade-map order."""
    values = snapshot.medal_values
    return [
        {
            "grade_id": grade.grade_id.value,
            "name": grade.name,
            "gold": grade.gold,
            "silver": grade.silver,
            "bronze": grade.bronze,
            "total_medals": grade.total_medals,
            "total_score": sum(grade.count(medal) * values.value_of(medal) for medal in Medal),
        }
        for grade in snapshot.grades.values()
    ]


def selected_grade(event: Event, position: int) -> Optional[str]:
    record = event.placement_at(position)
    return record.grade if record else None
