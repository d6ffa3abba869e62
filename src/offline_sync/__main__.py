"""CLI entry point — ``python -m offline_sync``."""

from __future__ import annotations

import argparse
import asyncio
import logging

from dotenv import load_dotenv

load_dotenv()

from offline_sync.api.client import TodoApiClient
from offline_sync.engine import SyncEngine
from offline_sync.errors import TodoValidationError
from offline_sync.facade import StorageFacade
from offline_sync.models import SyncConfig, load_config
from offline_sync.monitor import HealthMonitor
from offline_sync.registry import list_registered


def _print_modules() -> None:
    """Print all registered store backends and message handlers."""
    modules = list_registered()
    for category, entries in modules.items():
        print(f"\n{category.upper()}")
        print("-" * len(category))
        if not entries:
            print("  (none)")
        for key, name in entries.items():
            print(f"  {key:30s} {name}")
    print()


def _print_todos(engine: SyncEngine) -> None:
    if not engine.todos:
        print("(no todos)")
    for todo in engine.todos:
        mark = "x" if todo.completed else " "
        print(f"[{mark}] {todo.id:>15d}  {todo.text}")


async def _run_command(config: SyncConfig, args: argparse.Namespace) -> int:
    facade = StorageFacade.from_config(config)
    client = TodoApiClient(config.api)
    engine = SyncEngine(client, facade, config.settings)
    # One-shot commands: no reconnect drain, the user runs ``sync`` explicitly
    monitor = HealthMonitor(
        engine, client, facade, config.monitor.model_copy(update={"auto_sync": False})
    )

    try:
        await monitor.check_health()
        await engine.load_todos()

        try:
            if args.command == "add":
                await engine.add_todo(args.text)
            elif args.command == "toggle":
                await engine.toggle_todo(args.id)
            elif args.command == "update":
                await engine.update_todo(args.id, text=args.text, completed=args.completed)
            elif args.command == "delete":
                await engine.delete_todo(args.id)
            elif args.command == "sync":
                await engine.sync_offline_data()
        except TodoValidationError as exc:
            print(f"error: {exc}")
            return 1

        if args.command == "queue":
            for op in await facade.get_sync_queue():
                print(f"#{op.sequence_id:<5d} {op.kind.value:<7s} {op.payload.id:>15d}  {op.payload.text}")
            return 0
        elif args.command == "status":
            for key, value in engine.status().items():
                print(f"{key:15s} {value}")
            print(f"{'pending':15s} {len(await facade.get_sync_queue())}")
            return 0

        _print_todos(engine)
        print(f"({engine.connectivity}, sync {engine.sync_status})")
        if engine.error:
            print(f"error: {engine.error}")
            return 1
        return 0
    finally:
        engine.close()
        await monitor.stop()
        await client.disconnect()
        await facade.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="offline-sync",
        description="Manage todos offline-first against a remote todo API.",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to the sync YAML config file (defaults apply when omitted).",
    )
    parser.add_argument(
        "-l", "--list-modules",
        action="store_true",
        default=False,
        help="List registered store backends and message handlers, then exit.",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("list", help="Show todos.")
    add = sub.add_parser("add", help="Add a todo.")
    add.add_argument("text")
    toggle = sub.add_parser("toggle", help="Flip a todo's completed flag.")
    toggle.add_argument("id", type=int)
    update = sub.add_parser("update", help="Change a todo's text or completion.")
    update.add_argument("id", type=int)
    update.add_argument("--text")
    update.add_argument("--completed", action=argparse.BooleanOptionalAction, default=None)
    delete = sub.add_parser("delete", help="Delete a todo.")
    delete.add_argument("id", type=int)
    sub.add_parser("sync", help="Push offline changes to the server.")
    sub.add_parser("queue", help="Show pending offline operations.")
    sub.add_parser("status", help="Show connectivity and sync status.")

    args = parser.parse_args(argv)

    if args.list_modules:
        _print_modules()
        return 0

    if args.command is None:
        parser.error("a command is required (list, add, toggle, update, delete, sync, queue, status)")

    config = load_config(args.config)
    logging.basicConfig(
        level=config.settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    return asyncio.run(_run_command(config, args))


if __name__ == "__main__":
    raise SystemExit(main())
