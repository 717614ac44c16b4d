"""
Pytest configuration and shared fixtures for the medal tally tests.

Unit fixtures build snapshots in memory; integration fixtures wire real
stores to a temporary SQLite file and an in-process channel.
"""

import json
from typing import Any, Dict

import pytest

from medal_tally.channel import BroadcastChannel
from medal_tally.config import TallyConfig
from medal_tally.models import (
    Category,
    Event,
    Grade,
    GradeId,
    MedalValues,
    PlacementRecord,
    Snapshot,
)
from medal_tally.storage import DurableStorage
from medal_tally.store import StateStore

ENV_OVERRIDES = (
    "EVENT_NAME", "DB_PATH", "DATA_KEY", "TRIGGER_KEY", "DEFAULT_DATA",
    "FETCH_TIMEOUT", "CHANNEL_NAME", "POLL_INTERVAL", "REFRESH_INTERVAL",
    "GOLD_VALUE", "SILVER_VALUE", "BRONZE_VALUE", "ADMIN_ENABLED",
    "LIVE_UPDATES", "JSON_EXPORT", "MANUAL_MEDAL_EDITS", "SHOW_TIMESTAMPS",
)


# ============================================================================
# ENVIRONMENT
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the host environment from leaking into TallyConfig."""
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


# ============================================================================
# DOMAIN FACTORIES
# ============================================================================


def make_event(
    event_id: str,
    category: Category = Category.TEAM_SPORTS,
    subcategory: str = None,
    results: Dict[int, str] = None,
    gender: str = None,
) -> Event:
    return Event(
        event_id=event_id,
        name=event_id.replace("-", " ").title(),
        category=category,
        subcategory=subcategory,
        gender=gender,
        results=[
            PlacementRecord(position=position, grade=grade)
            for position, grade in (results or {}).items()
        ],
    )


def make_snapshot(*events: Event, last_updated: str = "2026-01-01T00:00:00.000Z") -> Snapshot:
    return Snapshot(
        grades={
            grade_id: Grade(grade_id=grade_id, name=grade_id.default_name)
            for grade_id in GradeId
        },
        sports={event.event_id: event for event in events},
        medal_values=MedalValues(),
        last_updated=last_updated,
    )


@pytest.fixture
def empty_snapshot() -> Snapshot:
    """All four grades at zero, no events."""
    return make_snapshot()


@pytest.fixture
def sample_snapshot() -> Snapshot:
    """A small meet covering every category filter rule."""
    return make_snapshot(
        make_event(
            "basketball",
            Category.TEAM_SPORTS,
            "Ball Games",
            {1: "grade-10", 2: "grade-9", 3: "grade-8"},
            gender="Boys",
        ),
        make_event("volleyball", Category.TEAM_SPORTS, "Ball Games"),
        make_event(
            "100m-dash",
            Category.INDIVIDUAL_DUAL,
            "Athletics",
            {1: "grade-7"},
        ),
        make_event(
            "badminton",
            Category.INDIVIDUAL_DUAL,
            "Racket Sports",
            {1: "grade-9", 2: "grade-7"},
            gender="Mixed",
        ),
        make_event("chess", Category.INDIVIDUAL_DUAL),
        make_event("mobile-legends", Category.E_SPORTS, "MOBA", {1: "grade-8"}),
    )


# ============================================================================
# INTEGRATION FIXTURES
# ============================================================================


def write_config(tmp_path, overrides: Dict[str, Any] = None) -> TallyConfig:
    document: Dict[str, Any] = {
        "storage": {"db_path": str(tmp_path / "tally.db")},
        "replication": {"poll_interval": 1, "refresh_interval": 60},
    }
    for section, values in (overrides or {}).items():
        if isinstance(values, dict):
            document.setdefault(section, {}).update(values)
        else:
            document[section] = values

    config_path = tmp_path / "tally_config.json"
    config_path.write_text(json.dumps(document), encoding="utf-8")
    return TallyConfig(str(config_path))


@pytest.fixture
def config(tmp_path) -> TallyConfig:
    return write_config(tmp_path)


@pytest.fixture
async def storage(config) -> DurableStorage:
    durable = DurableStorage(config.get("storage", "db_path"))
    await durable.init_db()
    return durable


@pytest.fixture
def channel(config):
    broadcast = BroadcastChannel(config.get("replication", "channel"))
    yield broadcast
    broadcast.close()


@pytest.fixture
async def writer(config, storage, channel):
    store = StateStore(config, storage, channel, name="writer")
    await store.load()
    yield store
    await store.stop()


@pytest.fixture
async def replica(config, storage, channel, writer):
    store = StateStore(config, storage, channel, read_only=True, name="leaderboard")
    await store.load()
    yield store
    await store.stop()
