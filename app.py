#!/usr/bin/env python3
"""
Medal tally server for school intramurals.
Serves the live leaderboard, the admin panel and a JSON API from one
process, keeping the leaderboard in step with admin changes.
"""

import argparse
import asyncio
import os
from pathlib import Path

from medal_tally.system import MedalTallySystem


async def main():
    """Main function with command line interface."""

    parser = argparse.ArgumentParser(
        description="Intramurals medal tally with leaderboard and admin web interfaces",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--web-port",
        type=int,
        default=int(os.getenv("WEB_PORT", "8081")),
        help="Web interface port (env: WEB_PORT)"
    )
    parser.add_argument(
        "--db",
        default=os.getenv("DB_PATH"),
        help="SQLite database file path, overrides the config file (env: DB_PATH)"
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "tally_config.json"),
        help="Configuration file path (env: CONFIG_PATH)"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind the web server to (env: HOST)"
    )

    args = parser.parse_args()

    config_path = Path(args.config)

    if config_path.exists() and not config_path.is_file():
        print(f"Error: {args.config} exists but is not a file")
        return

    system = MedalTallySystem(
        host=args.host,
        web_port=args.web_port,
        db_path=args.db,
        config_path=args.config,
    )

    await system.init()
    system.print_standings()

    await system.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nServer interrupted")
