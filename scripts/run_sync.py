"""
Run one offline -> online sync from the command line.

Prints the trigger response (including the run report) as JSON and exits
non-zero unless the run finished without errors.

Usage:
    python scripts/run_sync.py
    python scripts/run_sync.py --status
    python scripts/run_sync.py --pending
    python scripts/run_sync.py --secrets path/to/secrets.toml --concurrency 4

Requirements:
    - Supabase credentials in .streamlit/secrets.toml or SUPABASE_URL / SUPABASE_KEY
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from clinic_core.config import load_settings
from clinic_core.logging import setup_logging
from clinic_core.services import build_sync_service


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Push offline clinic records to the online database")
    parser.add_argument("--secrets", type=Path, default=None, help="Path to secrets.toml")
    parser.add_argument("--db", type=Path, default=None, help="Path to the offline SQLite database")
    parser.add_argument("--concurrency", type=int, default=None, help="Upserts in flight per entity")
    parser.add_argument("--status", action="store_true", help="Print the last sync report and exit")
    parser.add_argument("--pending", action="store_true", help="Print unsynced record counts and exit")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else None)

    settings = load_settings(args.secrets)
    overrides = {}
    if args.db:
        overrides["local_db_path"] = args.db
    if args.concurrency:
        overrides["concurrency"] = args.concurrency
    settings = dataclasses.replace(settings, **overrides)

    service = build_sync_service(settings)

    if args.status:
        print(json.dumps(service.status(), indent=2))
        return 0

    if args.pending:
        pending = service.pending_changes()
        print(json.dumps(pending.to_dict(), indent=2))
        return 0 if pending else 1

    response = asyncio.run(service.trigger({"source": "cli"}))
    print(json.dumps(response.to_dict(), indent=2))

    if response.ok and response.result.success:
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
