"""
State store: sole owner of the canonical snapshot.

A store is either the writer (the admin surface) or a read-only replica (the
leaderboard). Writers change state only through the mutation entry points,
each of which applies a pure aggregation function, stamps the result, writes
it to the durable slot and publishes it on the replication channel. Replicas
replace their snapshot wholesale when a strictly newer one arrives through the
channel or through polling the durable slot.
"""

import asyncio
import inspect
import json
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import aiohttp
import aiosqlite

from . import aggregation
from .channel import DATA_UPDATED, BroadcastChannel, Subscription, build_update_message
from .config import TallyConfig
from .exceptions import (
    ChannelUnavailable,
    LoadFailure,
    PersistFailure,
    ReadOnlyStoreError,
    SnapshotFormatError,
)
from .logger import get_logger
from .models import GradeId, Medal, Snapshot, default_snapshot, format_timestamp
from .storage import DurableStorage

BUNDLED_DATA_PATH = Path(__file__).parent / "data" / "intramurals_data.json"

SOURCE_STORAGE = "storage"
SOURCE_BUNDLED = "bundled"
SOURCE_DEFAULT = "default"

SnapshotListener = Callable[[Snapshot], Any]


def _content(snapshot: Snapshot) -> Dict[str, Any]:
    """Snapshot document without its lastUpdated stamp."""
    document = snapshot.to_document()
    document.pop("lastUpdated", None)
    return document


class StateStore:
    """Owns one snapshot and keeps it persisted and replicated."""

    def __init__(
        self,
        config: TallyConfig,
        storage: DurableStorage,
        channel: BroadcastChannel,
        *,
        read_only: bool = False,
        name: str = "writer",
    ) -> None:
        self.config = config
        self.storage = storage
        self.channel = channel
        self.read_only = read_only
        self.name = name

        self.data_key = config.get("storage", "data_key")
        self.trigger_key = config.get("storage", "trigger_key")
        self.source: Optional[str] = None

        self._snapshot: Optional[Snapshot] = None
        self._listeners: List[Subscription] = []
        self._lock = asyncio.Lock()
        self._channel_subscription: Optional[Subscription] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._last_trigger: Optional[str] = None

        self.log = get_logger(f"medal_tally.store.{name}")

    @property
    def snapshot(self) -> Snapshot:
        """Current snapshot; callers must treat it as read-only."""
        if self._snapshot is None:
            raise RuntimeError(f"Store {self.name} has not been loaded")
        return self._snapshot

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def load(self) -> Snapshot:
        """
        Load the snapshot and start listening on the replication channel.

        Tries the durable slot, then the bundled default data, then the
        hard-coded default. Never raises.

        @return: The loaded snapshot
        """
        self._snapshot = await self._bootstrap()
        self._last_trigger = await self._read_trigger()
        self._attach_channel()
        return self._snapshot

    async def _bootstrap(self) -> Snapshot:
        try:
            snapshot = await self._load_from_storage()
            self.source = SOURCE_STORAGE
            self.log.info("Loaded data from durable storage")
            return snapshot
        except LoadFailure as e:
            self.log.info(f"Durable storage unavailable: {e}")

        try:
            snapshot = await self._load_bundled()
            self.source = SOURCE_BUNDLED
            self.log.info("Loaded data from bundled default file")
            return snapshot
        except LoadFailure as e:
            self.log.warning(f"Error loading bundled data: {e}")

        self.source = SOURCE_DEFAULT
        self.log.warning("Falling back to empty default data")
        return default_snapshot(self.config.get_medal_values())

    def _parse(self, raw: str, source: str) -> Snapshot:
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SnapshotFormatError("Invalid JSON", {"source": source, "error": str(e)}) from e
        return Snapshot.from_document(document)

    async def _load_from_storage(self) -> Snapshot:
        try:
            raw = await self.storage.get_item(self.data_key)
        except (aiosqlite.Error, OSError) as e:
            raise LoadFailure("Durable slot unreadable", {"error": str(e)}) from e

        if raw is None:
            raise LoadFailure("Durable slot is empty", {"key": self.data_key})
        return self._parse(raw, SOURCE_STORAGE)

    async def _load_bundled(self) -> Snapshot:
        location = self.config.get("bootstrap", "default_data") or str(BUNDLED_DATA_PATH)

        if location.startswith(("http://", "https://")):
            raw = await self._fetch(location)
        else:
            try:
                raw = Path(location).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise LoadFailure("Bundled data unreadable", {"path": location, "error": str(e)}) from e

        return self._parse(raw, SOURCE_BUNDLED)

    async def _fetch(self, url: str) -> str:
        timeout = aiohttp.ClientTimeout(total=self.config.get("bootstrap", "fetch_timeout"))
        # Cache-defeating query parameter
        params = {"t": str(int(time.time() * 1000))}

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=params) as response:
                    if not 200 <= response.status < 300:
                        raise LoadFailure("HTTP error", {"url": url, "status": response.status})
                    return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            raise LoadFailure("Bundled data fetch failed", {"url": url, "error": str(e)}) from e

    async def refresh(self) -> Snapshot:
        """
        Reload through the bootstrap chain and replace the snapshot wholesale.

        Subscribers are only notified when the reloaded content differs. A
        fallback default is stamped afresh on every load, so an unchanged
        reload keeps the current snapshot and its timestamp.

        @return: The current snapshot after reloading
        """
        snapshot = await self._bootstrap()
        if self._snapshot is not None and _content(snapshot) == _content(self._snapshot):
            return self._snapshot
        self._snapshot = snapshot
        await self._notify(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Persist + broadcast
    # ------------------------------------------------------------------

    def _require_writable(self) -> None:
        if self.read_only:
            raise ReadOnlyStoreError("Store is read-only", {"store": self.name})

    def _next_timestamp(self) -> str:
        now = datetime.now(timezone.utc)
        now = now.replace(microsecond=now.microsecond // 1000 * 1000)

        # Keep lastUpdated strictly increasing so pollers never miss a commit
        previous = self._snapshot.updated_at if self._snapshot else None
        if previous is not None and now <= previous:
            now = previous + timedelta(milliseconds=1)
        return format_timestamp(now)

    async def commit(self, snapshot: Snapshot) -> Snapshot:
        """
        Make a snapshot canonical: stamp, persist, then broadcast.

        @param snapshot: Snapshot to commit; the store takes ownership of it
        @return: The committed snapshot
        @raise ReadOnlyStoreError: If called on a replica
        """
        self._require_writable()
        async with self._lock:
            return await self._commit(snapshot)

    async def _commit(self, snapshot: Snapshot) -> Snapshot:
        snapshot.last_updated = self._next_timestamp()
        self._snapshot = snapshot
        document = snapshot.to_document()

        # In-memory state stays authoritative when the durable write fails
        try:
            await self.storage.set_item(self.data_key, json.dumps(document))
        except PersistFailure as e:
            self.log.error(f"Error saving to durable storage: {e}")

        await self._broadcast(document)
        return snapshot

    async def _broadcast(self, document: Dict[str, Any]) -> None:
        try:
            await self.channel.publish(build_update_message(document))
            return
        except ChannelUnavailable as e:
            self.log.warning(f"Broadcast unavailable, writing update trigger: {e}")

        try:
            await self.storage.set_item(self.trigger_key, str(int(time.time() * 1000)))
        except PersistFailure as e:
            self.log.error(f"Error writing update trigger: {e}")

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, on_snapshot: SnapshotListener) -> Subscription:
        """
        Register a callback for newer snapshots.

        @param on_snapshot: Called (or awaited) with each accepted snapshot
        @return: Subscription handle
        """
        subscription = Subscription(self, on_snapshot)
        self._listeners.append(subscription)
        return subscription

    def _discard(self, subscription: Subscription) -> None:
        if subscription in self._listeners:
            self._listeners.remove(subscription)

    async def _notify(self, snapshot: Snapshot) -> None:
        for subscription in list(self._listeners):
            try:
                result = subscription.callback(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.log.error(f"Snapshot listener failed: {e}")

    async def _accept(self, incoming: Snapshot, force: bool = False) -> bool:
        if not force and not incoming.is_newer_than(self._snapshot):
            return False
        self._snapshot = incoming
        await self._notify(incoming)
        return True

    def _attach_channel(self) -> None:
        if self._channel_subscription is not None:
            return
        try:
            self._channel_subscription = self.channel.subscribe(self._on_message)
        except ChannelUnavailable as e:
            self.log.warning(f"Live updates unavailable, relying on polling: {e}")

    async def _on_message(self, message: Dict[str, Any]) -> None:
        if not isinstance(message, dict) or message.get("type") != DATA_UPDATED:
            return
        try:
            incoming = Snapshot.from_document(message.get("data"))
        except SnapshotFormatError as e:
            self.log.warning(f"Ignoring malformed update: {e}")
            return

        if await self._accept(incoming):
            self.log.info("Received real-time update")

    # ------------------------------------------------------------------
    # Polling fallback
    # ------------------------------------------------------------------

    async def _read_trigger(self) -> Optional[str]:
        try:
            return await self.storage.get_item(self.trigger_key)
        except (aiosqlite.Error, OSError) as e:
            self.log.debug(f"Update trigger unreadable: {e}")
            return None

    async def poll_once(self) -> bool:
        """
        Check the durable slot for a newer snapshot.

        A changed update trigger forces a reload even when timestamps match.

        @return: True if a snapshot was accepted and subscribers notified
        """
        trigger = await self._read_trigger()
        forced = trigger is not None and trigger != self._last_trigger
        self._last_trigger = trigger

        try:
            candidate = await self._load_from_storage()
        except LoadFailure as e:
            self.log.debug(f"Poll found nothing to load: {e}")
            return False

        accepted = await self._accept(candidate, force=forced)
        if accepted:
            self.log.info("Detected data update via polling")
        return accepted

    async def _poll_loop(self) -> None:
        poll_interval = self.config.get("replication", "poll_interval")
        refresh_interval = self.config.get("replication", "refresh_interval")
        loop = asyncio.get_running_loop()
        next_refresh = loop.time() + refresh_interval

        while True:
            await asyncio.sleep(poll_interval)
            try:
                if loop.time() >= next_refresh:
                    next_refresh = loop.time() + refresh_interval
                    await self.refresh()
                else:
                    await self.poll_once()
            except (LoadFailure, aiosqlite.Error, OSError) as e:
                self.log.error(f"Poll cycle failed: {e}")

    def start_polling(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Cancel polling and detach from the replication channel."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        if self._channel_subscription is not None:
            self._channel_subscription.unsubscribe()
            self._channel_subscription = None

    # ------------------------------------------------------------------
    # Mutation entry points (writer only)
    # ------------------------------------------------------------------

    async def update(self, mutator: Callable[[Snapshot], Snapshot]) -> Snapshot:
        """
        Apply a pure snapshot transformation and commit the result.

        @param mutator: Function from the current snapshot to a new one
        @return: The committed snapshot
        @raise ReadOnlyStoreError: If called on a replica
        """
        self._require_writable()
        async with self._lock:
            return await self._commit(mutator(self.snapshot))

    async def set_placement(
        self,
        event_id: str,
        position: Union[int, str],
        grade: Union[GradeId, str, None],
    ) -> Snapshot:
        return await self.update(
            lambda snapshot: aggregation.set_placement(snapshot, event_id, position, grade)
        )

    async def clear_event(self, event_id: str) -> Snapshot:
        return await self.update(
            lambda snapshot: aggregation.clear_placements(snapshot, event_id)
        )

    async def set_medal_count(
        self,
        grade: Union[GradeId, str],
        medal: Union[Medal, str],
        raw_value: Any,
    ) -> Snapshot:
        """Manual override; bypasses placement-derived counts."""
        return await self.update(
            lambda snapshot: aggregation.set_medal_count(snapshot, grade, medal, raw_value)
        )

    async def add_medal(self, grade: Union[GradeId, str], medal: Union[Medal, str]) -> Snapshot:
        return await self.update(
            lambda snapshot: aggregation.add_medal(snapshot, grade, medal)
        )

    async def reset_grade(self, grade: Union[GradeId, str]) -> Snapshot:
        return await self.update(lambda snapshot: aggregation.reset_grade(snapshot, grade))

    async def reset_all(self) -> Snapshot:
        return await self.update(aggregation.reset_all)

    async def recalculate(self) -> Snapshot:
        """Rebuild counts from placements and save, discarding manual overrides."""
        return await self.update(aggregation.recompute_medals_from_placements)

    async def set_medal_values(
        self,
        gold: Any = None,
        silver: Any = None,
        bronze: Any = None,
    ) -> Snapshot:
        return await self.update(
            lambda snapshot: aggregation.with_medal_values(snapshot, gold, silver, bronze)
        )

    def export_document(self) -> Dict[str, Any]:
        return self.snapshot.to_document()
