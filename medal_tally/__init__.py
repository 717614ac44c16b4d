"""
Medal Tally - A live medal leaderboard for school intramurals.

This package provides:
- Medal standings computed from event placements
- Admin surface for recording placements and correcting medal counts
- Read-only leaderboard replica kept current by broadcast and polling
- Durable storage of the canonical snapshot in SQLite
- Web interface, JSON API and websocket live updates
"""

from .channel import BroadcastChannel
from .config import TallyConfig
from .storage import DurableStorage
from .store import StateStore
from .web_handlers import WebHandlers
from .system import MedalTallySystem

__version__ = "1.0.0"
__author__ = "Medal Tally Contributors"

__all__ = [
    "BroadcastChannel",
    "TallyConfig",
    "DurableStorage",
    "StateStore",
    "WebHandlers",
    "MedalTallySystem",
]
