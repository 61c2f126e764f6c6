"""
Admin command line for the biometric identity store.

Usage:
    biostore-admin list
    biostore-admin show usr_abc123
    biostore-admin update usr_abc123 --display-name "Alice" --enrolled
    biostore-admin delete usr_abc123
    biostore-admin session show
    biostore-admin session clear
    biostore-admin compare stored.json live.json --threshold 0.45
    biostore-admin sync-status

    # Use a specific configuration file
    biostore-admin --config path/to/config.yaml list

Exit codes: 0 on success, 1 when a requested record is absent, 2 on usage errors.

Author: CS-1
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime, timezone
from typing import List, Optional

from biostore.config import configure_logging, load_config
from biostore.context import StoreContext
from biostore.models import RegistryRecord
from biostore.store import BiometricStore


def format_timestamp(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def print_record(record: RegistryRecord) -> None:
    print(f"{record.identity_id}")
    print(f"  display name: {record.display_name or '-'}")
    print(f"  email:        {record.email or '-'}")
    print(f"  photo:        {record.photo_url or '-'}")
    print(f"  enrolled:     {'yes' if record.enrolled else 'no'}")
    print(f"  updated:      {format_timestamp(record.updated_at)} UTC")


def load_descriptor(path: str) -> List[float]:
    """Read a descriptor from a JSON file: a list, or an object with a 'descriptor' key."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("descriptor")
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a descriptor list")
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="biostore-admin",
        description="Inspect and manage the biometric identity store",
    )
    parser.add_argument("--config", default=None, help="Path to config.yaml")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="List registered users (newest first)")

    show = commands.add_parser("show", help="Show one registry record")
    show.add_argument("identity_id")

    update = commands.add_parser("update", help="Update a registry record")
    update.add_argument("identity_id")
    update.add_argument("--email")
    update.add_argument("--display-name")
    update.add_argument("--photo-url")
    enrolled = update.add_mutually_exclusive_group()
    enrolled.add_argument("--enrolled", dest="enrolled", action="store_true", default=None)
    enrolled.add_argument("--not-enrolled", dest="enrolled", action="store_false")

    delete = commands.add_parser("delete", help="Delete a user's embedding and registry record")
    delete.add_argument("identity_id")

    session = commands.add_parser("session", help="Inspect or clear the offline session")
    session.add_argument("action", choices=["show", "clear"])

    compare = commands.add_parser("compare", help="Compare two descriptor JSON files")
    compare.add_argument("stored")
    compare.add_argument("live")
    compare.add_argument("--threshold", type=float, default=None)

    commands.add_parser("sync-status", help="Show pending and failed remote sync tasks")

    return parser


async def run_command(args: argparse.Namespace, store: BiometricStore) -> int:
    if args.command == "list":
        records = await store.list_registered_users()
        if not records:
            print("No registered users")
        for record in records:
            flag = "enrolled" if record.enrolled else "not enrolled"
            name = record.display_name or record.email or "-"
            print(f"{record.identity_id}\t{name}\t{flag}\t{format_timestamp(record.updated_at)}")
        return 0

    if args.command == "show":
        record = store.get_registry_record(args.identity_id)
        if record is None:
            print(f"User {args.identity_id} not found", file=sys.stderr)
            return 1
        print_record(record)
        embedding = await store.get_embedding(args.identity_id)
        print(f"  embedding:    {'stored' if embedding else 'none'}")
        return 0

    if args.command == "update":
        fields = {
            "email": args.email,
            "display_name": args.display_name,
            "photo_url": args.photo_url,
            "enrolled": args.enrolled,
        }
        fields = {k: v for k, v in fields.items() if v is not None}
        record = await store.update_registry(args.identity_id, **fields)
        print_record(record)
        return 0

    if args.command == "delete":
        if store.get_registry_record(args.identity_id) is None \
                and await store.get_embedding(args.identity_id) is None:
            print(f"User {args.identity_id} not found", file=sys.stderr)
            return 1
        await store.delete_user_record(args.identity_id)
        print(f"Deleted {args.identity_id}")
        return 0

    if args.command == "session":
        if args.action == "clear":
            await store.clear_offline_session()
            print("Offline session cleared")
            return 0
        session = await store.get_offline_session()
        if session is None:
            print("No offline session")
            return 1
        print(f"{session.identity_id} ({session.display_name or session.email or '-'}) "
              f"since {format_timestamp(session.created_at)} UTC")
        return 0

    if args.command == "compare":
        result = store.compare_descriptors(
            load_descriptor(args.stored), load_descriptor(args.live), args.threshold
        )
        print(f"{'MATCH' if result.is_match else 'NO MATCH'} (distance {result.distance:.4f})")
        return 0

    if args.command == "sync-status":
        await store.context.sync_queue.drain()
        status = store.sync_status()
        print(f"pending: {status['pending']}  failed: {status['failed']}  "
              f"superseded: {status['superseded']}  "
              f"recorded: {status['total']}")
        for task in store.context.sync_queue.failed:
            print(f"  failed #{task.task_id}: {task.operation} "
                  f"{task.collection}/{task.identity_id}")
        return 0

    raise ValueError(f"Unknown command: {args.command}")


async def run(args: argparse.Namespace, config: dict) -> int:
    async with BiometricStore(StoreContext(config)) as store:
        return await run_command(args, store)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    configure_logging(config)

    try:
        return asyncio.run(run(args, config))
    except (OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
