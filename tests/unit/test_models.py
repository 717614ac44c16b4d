"""
Unit tests for the snapshot model and its document form.
"""

import copy

import pytest

from medal_tally.exceptions import LoadFailure, SnapshotFormatError
from medal_tally.models import (
    Category,
    CategoryFilter,
    GradeId,
    Medal,
    MedalValues,
    Snapshot,
    default_snapshot,
    format_timestamp,
    parse_timestamp,
)

DOCUMENT = {
    "grades": {
        "grade-7": {"name": "Grade 7", "gold": 1, "silver": 0, "bronze": 0},
        "grade-8": {"name": "Grade 8", "gold": 0, "silver": 1, "bronze": 0},
    },
    "sports": {
        "relay": {
            "name": "4x100 Relay",
            "category": "Individual Sports",
            "subcategory": "Athletics",
            "gender": "Girls",
            "icon": "fas fa-running",
            "results": [
                {"position": 1, "grade": "Grade 7"},
                {"position": 2, "grade": "grade-8"},
            ],
        },
        "chess": {"name": "Chess", "category": "Individual/Dual Sports"},
    },
    "medalValues": {"gold": 5, "silver": 3, "bronze": 1},
    "lastUpdated": "2026-03-01T10:00:00.000Z",
}


class TestGradeId:
    """Grade references resolve to the closed grade set."""

    @pytest.mark.parametrize("reference", ["grade-7", "Grade 7", "GRADE_7", " grade 7 "])
    def test_resolve(self, reference):
        assert GradeId.resolve(reference) is GradeId.GRADE_7

    @pytest.mark.parametrize("reference", ["grade-11", "Seniors", "", None, 7])
    def test_resolve_unknown(self, reference):
        assert GradeId.resolve(reference) is None

    def test_default_name(self):
        assert GradeId.GRADE_10.default_name == "Grade 10"


class TestEnums:
    """Medal positions, category labels and filter slugs."""

    def test_medal_positions(self):
        assert [medal.position for medal in Medal] == [1, 2, 3]
        assert Medal.from_position(2) is Medal.SILVER
        assert Medal.from_position(0) is None
        assert Medal.from_position(True) is None

    def test_category_alias(self):
        assert Category.parse("Individual Sports") is Category.INDIVIDUAL_DUAL

    def test_category_unknown(self):
        with pytest.raises(SnapshotFormatError):
            Category.parse("Board Games")

    def test_filter_parse(self):
        assert CategoryFilter.parse("E-Sports") is CategoryFilter.E_SPORTS
        assert CategoryFilter.parse("individual-sports") is CategoryFilter.ATHLETICS
        assert CategoryFilter.parse("nope") is None
        assert CategoryFilter.TEAM_SPORTS.category is Category.TEAM_SPORTS
        assert CategoryFilter.ALL.category is None


class TestSnapshotDocument:
    """Loading and dumping the persisted document form."""

    def test_from_document(self):
        snapshot = Snapshot.from_document(DOCUMENT)

        assert list(snapshot.grades) == [GradeId.GRADE_7, GradeId.GRADE_8]
        assert snapshot.medal_values == MedalValues(5, 3, 1)
        relay = snapshot.sports["relay"]
        assert relay.category is Category.INDIVIDUAL_DUAL
        assert relay.display_name == "4x100 Relay (Girls)"
        assert relay.placement_at(1).grade == "grade-7"

    def test_defaults_for_optional_fields(self):
        chess = Snapshot.from_document(DOCUMENT).sports["chess"]

        assert chess.icon == "fas fa-medal"
        assert chess.group_label == "Other"
        assert chess.results == []
        assert not chess.completed

    def test_to_document_normalizes_grade_references(self):
        document = Snapshot.from_document(DOCUMENT).to_document()

        assert document["sports"]["relay"]["category"] == "Individual/Dual Sports"
        assert document["sports"]["relay"]["results"][0] == {"position": 1, "grade": "grade-7"}
        assert document["lastUpdated"] == DOCUMENT["lastUpdated"]
        assert Snapshot.from_document(document) == Snapshot.from_document(DOCUMENT)

    def test_missing_medal_values_use_defaults(self):
        document = copy.deepcopy(DOCUMENT)
        del document["medalValues"]
        assert Snapshot.from_document(document).medal_values == MedalValues(3, 2, 1)

    def test_duplicate_positions_keep_first(self):
        document = copy.deepcopy(DOCUMENT)
        document["sports"]["relay"]["results"].append({"position": 1, "grade": "grade-8"})

        relay = Snapshot.from_document(document).sports["relay"]

        assert len(relay.results) == 2
        assert relay.placement_at(1).grade == "grade-7"

    def test_unknown_grade_reference_kept_verbatim(self):
        document = copy.deepcopy(DOCUMENT)
        document["sports"]["chess"]["results"] = [{"position": 3, "grade": "Faculty"}]

        chess = Snapshot.from_document(document).sports["chess"]
        assert chess.placement_at(3).grade == "Faculty"

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda d: d.update(grades=[]),
            lambda d: d["grades"].update({"grade-12": {"name": "Grade 12"}}),
            lambda d: d["grades"]["grade-7"].update(gold=-1),
            lambda d: d["sports"]["chess"].update(category="Board Games"),
            lambda d: d["sports"]["relay"]["results"].append({"position": 4, "grade": "grade-7"}),
            lambda d: d["medalValues"].update(gold=0),
            lambda d: d.update(lastUpdated=12345),
        ],
    )
    def test_malformed_documents(self, mutate):
        document = copy.deepcopy(DOCUMENT)
        mutate(document)

        with pytest.raises(SnapshotFormatError):
            Snapshot.from_document(document)

    def test_format_error_is_load_failure(self):
        with pytest.raises(LoadFailure):
            Snapshot.from_document("not a document")


class TestTimestamps:
    """Snapshot recency comparisons."""

    def test_format_round_trip(self):
        moment = parse_timestamp("2026-03-01T10:00:00.123Z")
        assert format_timestamp(moment) == "2026-03-01T10:00:00.123Z"

    def test_is_newer_than_is_strict(self):
        older = Snapshot.from_document(DOCUMENT)
        same = Snapshot.from_document(DOCUMENT)
        newer = Snapshot.from_document(dict(DOCUMENT, lastUpdated="2026-03-01T10:00:00.001Z"))

        assert newer.is_newer_than(older)
        assert not same.is_newer_than(older)
        assert not older.is_newer_than(newer)

    def test_missing_timestamp_is_never_newer(self):
        undated = Snapshot.from_document(dict(DOCUMENT, lastUpdated=None))

        assert not undated.is_newer_than(None)
        assert Snapshot.from_document(DOCUMENT).is_newer_than(undated)


class TestDefaultSnapshot:
    """The hard-coded fallback."""

    def test_four_grades_at_zero(self):
        snapshot = default_snapshot()

        assert list(snapshot.grades) == list(GradeId)
        assert all(grade.total_medals == 0 for grade in snapshot.grades.values())
        assert snapshot.sports == {}
        assert snapshot.medal_values == MedalValues(3, 2, 1)
        assert snapshot.updated_at is not None

    def test_custom_medal_values_are_copied(self):
        values = MedalValues(4, 2, 1)
        snapshot = default_snapshot(values)

        values.gold = 9
        assert snapshot.medal_values.gold == 4
