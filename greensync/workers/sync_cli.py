from __future__ import annotations

import argparse
import json
import logging

from greensync.config import load_config, setup_logging
from greensync.services.container import ServiceContainer

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Run one sync pipeline without starting the web server."""
    parser = argparse.ArgumentParser(prog="greensync-sync")
    parser.add_argument("--user-id", help="Store this API user id before syncing")
    parser.add_argument("--token", help="Store this API token before syncing")
    parser.add_argument("--database", help="SQLite database path (overrides GREENSYNC_DATABASE_PATH)")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the sync to finish")
    parser.add_argument("--status", action="store_true", help="Print stored sync settings and exit")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    args = parser.parse_args(argv)

    if bool(args.user_id) != bool(args.token):
        parser.error("--user-id and --token must be given together")

    config = load_config()
    if args.database:
        config.database_path = args.database
    setup_logging(debug=config.debug, log_dir=config.log_dir, log_to_file=config.log_to_file)

    container = ServiceContainer.build(config)
    try:
        if args.user_id:
            container.settings_service.set_credentials(user_id=args.user_id, token=args.token)

        if args.status:
            print(json.dumps(container.settings_service.snapshot(), indent=2))
            return 0

        result = container.coordinator.sync(timeout=args.timeout)
        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
        elif result.ok:
            print("Sync completed: " + ", ".join(phase.value for phase in result.completed_phases))
        else:
            print(f"Sync failed in {result.failed_phase}:")
            for message in result.error_messages():
                print(f"  {message}")
        return 0 if result.ok else 1
    finally:
        container.shutdown()


if __name__ == "__main__":
    import sys

    raise SystemExit(main(sys.argv[1:]))
