"""
Main MedalTallySystem class that orchestrates all components.
"""

import asyncio
from typing import Optional

import aiohttp_cors
from aiohttp import web, web_runner

from .channel import BroadcastChannel
from .config import TallyConfig
from .live import LiveUpdateHub
from .logger import get_logger
from .storage import DurableStorage
from .store import StateStore
from .views import build_standings_view, format_last_updated
from .web_handlers import WebHandlers

log = get_logger("medal_tally.system")


class MedalTallySystem:
    """Async medal tally with an admin writer and a leaderboard replica."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        web_port: int = 8081,
        db_path: Optional[str] = None,
        config_path: str = "tally_config.json",
    ) -> None:
        self.host = host
        self.web_port = web_port

        # Load configuration
        self.config = TallyConfig(config_path)
        self.db_path = db_path or self.config.get("storage", "db_path")

        # Initialize components
        self.storage = DurableStorage(self.db_path)
        self.channel = BroadcastChannel(self.config.get("replication", "channel"))
        self.writer = StateStore(self.config, self.storage, self.channel, name="writer")
        self.replica = StateStore(
            self.config,
            self.storage,
            self.channel,
            read_only=True,
            name="leaderboard",
        )
        self.live = LiveUpdateHub(self.replica)
        self.web_handlers = WebHandlers(self.writer, self.replica, self.config)

    async def init(self) -> None:
        """
        Initialize storage and load both stores.

        Each store bootstraps independently; only the replica polls.
        """
        await self.storage.init_db()
        await self.writer.load()
        await self.replica.load()

        if self.config.is_feature_enabled("live_updates"):
            self.live.start()
        self.replica.start_polling()

        log.info(
            f"Loaded {self.config.get('event_name')} from {self.writer.source} "
            f"(last updated {self.writer.snapshot.last_updated or 'never'})"
        )

    def create_app(self) -> web.Application:
        """
        Build the aiohttp application with every enabled route.

        @return: Configured web application
        """
        app = web.Application()
        handlers = self.web_handlers

        # Setup CORS
        cors = aiohttp_cors.setup(
            app,
            defaults={
                "*": aiohttp_cors.ResourceOptions(
                    allow_credentials=True,
                    expose_headers="*",
                    allow_headers="*",
                    allow_methods="*",
                )
            },
        )

        # Web routes
        app.router.add_get("/", handlers.web_index)
        app.router.add_get("/category/{category}", handlers.web_category)

        # API routes
        app.router.add_get("/api/snapshot", handlers.web_api_snapshot)
        app.router.add_get("/api/standings", handlers.web_api_standings)
        app.router.add_get("/api/categories/{category}", handlers.web_api_category)
        app.router.add_get("/api/stats", handlers.web_api_stats)
        app.router.add_post("/api/refresh", handlers.web_api_refresh)

        if self.config.is_feature_enabled("json_export"):
            app.router.add_get("/api/export", handlers.web_api_export)

        # Conditionally add admin routes
        if self.config.is_feature_enabled("admin_enabled"):
            app.router.add_get("/admin", handlers.web_admin)
            app.router.add_post("/api/sports/{sport}/placements", handlers.web_api_set_placement)
            app.router.add_post("/api/sports/{sport}/clear", handlers.web_api_clear_sport)
            app.router.add_post("/api/grades/{grade}/medals", handlers.web_api_set_medals)
            app.router.add_post(
                "/api/grades/{grade}/medals/{medal}/add", handlers.web_api_add_medal
            )
            app.router.add_post("/api/grades/{grade}/reset", handlers.web_api_reset_grade)
            app.router.add_post("/api/reset", handlers.web_api_reset_all)
            app.router.add_post("/api/recalculate", handlers.web_api_recalculate)
            app.router.add_post("/api/medal-values", handlers.web_api_medal_values)

        # Add CORS to all routes
        for route in list(app.router.routes()):
            cors.add(route)

        # Websocket upgrades are not CORS-wrapped
        if self.config.is_feature_enabled("live_updates"):
            app.router.add_get("/ws", self.live.handle)

        return app

    async def start_web_server(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> web_runner.AppRunner:
        """
        Start the web server.

        @param host: Host address to bind the server to (default uses configured host)
        @param port: Port number to use (default uses configured web_port)
        @return: AppRunner instance for the web server
        """
        if host is None:
            host = self.host
        if port is None:
            port = self.web_port

        app_runner = web_runner.AppRunner(self.create_app())
        await app_runner.setup()

        site = web_runner.TCPSite(app_runner, host, port)
        await site.start()

        log.info(f"Web server running on http://{host}:{port}")
        return app_runner

    async def run(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> None:
        """
        Serve the leaderboard and admin surface until cancelled.

        @param host: Web server host address (default uses configured host)
        @param port: Web server port (default uses configured web_port)
        """
        web_server_runner = await self.start_web_server(host, port)

        print(f"\n{self.config.get('event_name')} Running!")
        print(f"Leaderboard: http://{host or self.host}:{port or self.web_port}")
        if self.config.is_feature_enabled("admin_enabled"):
            print(f"Admin Panel: http://{host or self.host}:{port or self.web_port}/admin")
        print("\nPress Ctrl+C to stop...\n")

        try:
            await asyncio.Event().wait()
        finally:
            await self.shutdown(web_server_runner)

    async def shutdown(self, runner: Optional[web_runner.AppRunner] = None) -> None:
        """Stop polling, close live sockets and the channel, then the web runner."""
        await self.live.close()
        await self.replica.stop()
        await self.writer.stop()
        self.channel.close()
        if runner is not None:
            await runner.cleanup()
        log.info("Shut down cleanly")

    def print_standings(self) -> None:
        """
        Print the overall standings to console.

        Uses the writer's snapshot, which is canonical.
        """
        snapshot = self.writer.snapshot

        print("\n" + "=" * 50)
        print("OVERALL MEDAL TALLY")
        print("=" * 50)

        for row in build_standings_view(snapshot):
            print(
                f"{row.rank:2d}. {row.name:<10} "
                f"G:{row.gold:3d} S:{row.silver:3d} B:{row.bronze:3d} "
                f"Total:{row.total_medals:4d} Score:{row.total_score:5d}"
            )

        completed = sum(1 for event in snapshot.sports.values() if event.completed)
        print(f"\nEvents completed: {completed}/{len(snapshot.sports)}")
        print(f"Last updated: {format_last_updated(snapshot)}")
