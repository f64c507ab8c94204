"""
Command-line interface for the hosts keeper.

This module provides the main CLI entry point with commands for:
- list / stats: Inspect blocked domains
- add / remove: Block or unblock a hostname and save
- history: List, roll back to, or delete snapshots
- config: Show or change config.ini values
- export / import / fetch: Move hosts content in and out
- watch: Follow external edits of the hosts file
"""

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from . import __version__
from .app_state import AppState
from .audit_logger import AuditLogger
from .commit import CommitEngine
from .config_store import ConfigStore, format_field
from .enums import LogLevel
from .exceptions import HostsKeeperError, IoError
from .models import HistoryEntry
from .parser import decode_hosts, encode_hosts


def open_state(args: argparse.Namespace, with_logger: bool = False) -> AppState:
    """
    Build and load the application state for a command.

    A logger is attached for ``--verbose`` and for commands that run
    until interrupted.
    """
    config_path = Path(args.config) if args.config else None

    logger = None
    if args.verbose or with_logger:
        config = ConfigStore(config_path).load()
        logger = AuditLogger(output_format=config.log_format, min_level=config.log_level)

    state = AppState(
        config_path=config_path,
        logger=logger,
        commit_engine=CommitEngine(logger=logger, flush_dns=not args.no_dns_flush),
    )
    state.load()
    if logger and args.verbose:
        logger.min_level = LogLevel.DEBUG
    return state


def print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def print_saved(entry: HistoryEntry) -> None:
    print(f"Saved. Previous version kept as {entry.filename}")


def cmd_list(args: argparse.Namespace) -> int:
    """Handle the 'list' command."""
    with open_state(args) as state:
        domains = state.get_blocked_domains()

    if args.json:
        print_json([domain.to_dict() for domain in domains])
        return 0

    for domain in domains:
        print(f"{domain.ip}\t{domain.hostname}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Handle the 'stats' command."""
    with open_state(args) as state:
        stats = state.get_statistics()

    if args.json:
        print_json(stats.to_dict())
    else:
        print(f"Blocked domains: {stats.total_blocked}")
        print(f"Unique IPs: {stats.unique_ips}")
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    """Handle the 'add' command."""
    with open_state(args) as state:
        if not state.add_domain(args.ip, args.hostname):
            print(f"{args.hostname} is already blocked on {args.ip}")
            return 0
        print(f"Blocked {args.hostname} on {args.ip}")
        if not args.no_save:
            print_saved(state.save_changes())
    return 0


def cmd_remove(args: argparse.Namespace) -> int:
    """Handle the 'remove' command."""
    with open_state(args) as state:
        state.remove_domain(args.ip, args.hostname)
        print(f"Unblocked {args.hostname} on {args.ip}")
        if not args.no_save:
            print_saved(state.save_changes())
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """Handle the 'history' command."""
    with open_state(args) as state:
        if args.action == "list":
            entries = state.get_history_list()
            if args.json:
                print_json([entry.to_dict() for entry in entries])
                return 0
            if not entries:
                print("No history entries")
            for entry in entries:
                moment = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(entry.timestamp))
                print(
                    f"{entry.filename}  {moment}  "
                    f"{entry.entry_count} entries  {entry.file_size} bytes"
                )
            return 0

        if args.action == "rollback":
            if len(args.files) != 1:
                print("Error: rollback takes exactly one filename", file=sys.stderr)
                return 1
            state.rollback_to(args.files[0])
            print(f"Restored {args.files[0]}")
            return 0

        if not args.files:
            print("Error: delete needs at least one filename", file=sys.stderr)
            return 1
        results = state.delete_history_files(args.files)
        if args.json:
            print_json([result.to_dict() for result in results])
        else:
            for result in results:
                status = "deleted" if result.deleted else f"failed: {result.error}"
                print(f"{result.filename}: {status}")
        return 0 if all(result.deleted for result in results) else 1


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    with open_state(args) as state:
        if args.action == "set":
            if args.key is None or args.value is None:
                print("Error: config set needs KEY and VALUE", file=sys.stderr)
                return 1
            config = state.update_config(**{args.key: args.value})
            print(f"{args.key} = {format_field(getattr(config, args.key))}")
            return 0

        config = state.get_config()
        config_path = state.config_path

    if args.json:
        print_json(config.to_dict())
        return 0

    print(f"Configuration from: {config_path}")
    for name, value in config.to_dict().items():
        print(f"  {name}: {'' if value is None else value}")
    print(f"  (hosts file in use: {config.resolved_host_file_path()})")
    print(f"  (history directory in use: {config.resolved_history_dir()})")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Handle the 'export' command."""
    with open_state(args) as state:
        content = state.export_hosts()

    if not args.output:
        sys.stdout.write(content)
        return 0

    try:
        Path(args.output).write_bytes(encode_hosts(content))
    except OSError as e:
        raise IoError.from_os_error(e, args.output, "write export file")
    print(f"Exported to {args.output}")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Handle the 'import' command."""
    try:
        content = decode_hosts(Path(args.file).read_bytes())
    except OSError as e:
        raise IoError.from_os_error(e, args.file, "read import file")

    with open_state(args) as state:
        state.import_hosts(content)
        stats = state.get_statistics()
        print(f"Imported {args.file} ({stats.total_blocked} blocked domains)")
        if not args.no_save:
            print_saved(state.save_changes())
    return 0


def cmd_fetch(args: argparse.Namespace) -> int:
    """Handle the 'fetch' command."""
    with open_state(args) as state:
        added = state.import_from_url(args.url, ip=args.ip)
        print(f"Added {added} new blocked domain(s) from {args.url}")
        if added and not args.no_save:
            print_saved(state.save_changes())
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    """Handle the 'watch' command."""
    with open_state(args, with_logger=True) as state:
        state.start_watcher()
        print(f"Watching {state.get_host_file_path()} (Ctrl+C to stop)")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            print("Stopped")
    return 0


def cmd_path(args: argparse.Namespace) -> int:
    """Handle the 'path' command."""
    with open_state(args) as state:
        print(state.get_host_file_path())
    return 0


def cmd_check_privileges(args: argparse.Namespace) -> int:
    """Handle the 'check-privileges' command."""
    with open_state(args) as state:
        elevated = state.check_admin_privileges()
        path = state.get_host_file_path()
    if elevated:
        print(f"OK: {path} is writable")
        return 0
    print(f"No write access to {path}; run as administrator/root to save changes")
    return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="hosts-keeper",
        description="Block domains through the system hosts file, with history and rollback",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to config.ini",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--no-dns-flush",
        action="store_true",
        help="Do not flush the DNS cache after writing the hosts file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'list' command
    list_parser = subparsers.add_parser("list", help="List blocked domains")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    list_parser.set_defaults(func=cmd_list)

    # 'stats' command
    stats_parser = subparsers.add_parser("stats", help="Show blocking statistics")
    stats_parser.add_argument("--json", action="store_true", help="Output as JSON")
    stats_parser.set_defaults(func=cmd_stats)

    # 'add' / 'remove' commands
    for name, func, help_text in (
        ("add", cmd_add, "Block a hostname"),
        ("remove", cmd_remove, "Unblock a hostname"),
    ):
        edit_parser = subparsers.add_parser(name, help=help_text)
        edit_parser.add_argument("ip", help="Block address (e.g. 0.0.0.0 or 127.0.0.1)")
        edit_parser.add_argument("hostname", help="Hostname (e.g. ads.example.com)")
        edit_parser.add_argument(
            "--no-save",
            action="store_true",
            help="Validate and apply in memory only",
        )
        edit_parser.set_defaults(func=func)

    # 'history' command
    history_parser = subparsers.add_parser("history", help="Manage hosts file snapshots")
    history_parser.add_argument(
        "action",
        choices=["list", "rollback", "delete"],
        help="History action",
    )
    history_parser.add_argument("files", nargs="*", help="Snapshot filename(s)")
    history_parser.add_argument("--json", action="store_true", help="Output as JSON")
    history_parser.set_defaults(func=cmd_history)

    # 'config' command
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument("action", choices=["show", "set"], help="Configuration action")
    config_parser.add_argument("key", nargs="?", help="Field name (e.g. max_history_entries)")
    config_parser.add_argument("value", nargs="?", help="New value")
    config_parser.add_argument("--json", action="store_true", help="Output as JSON")
    config_parser.set_defaults(func=cmd_config)

    # 'export' command
    export_parser = subparsers.add_parser("export", help="Write the hosts content to a file")
    export_parser.add_argument("--output", "-o", help="Destination file (default: stdout)")
    export_parser.set_defaults(func=cmd_export)

    # 'import' command
    import_parser = subparsers.add_parser("import", help="Replace the hosts content from a file")
    import_parser.add_argument("file", help="Hosts-format file to import")
    import_parser.add_argument("--no-save", action="store_true", help="Validate only")
    import_parser.set_defaults(func=cmd_import)

    # 'fetch' command
    fetch_parser = subparsers.add_parser("fetch", help="Merge a remote HTTPS blocklist")
    fetch_parser.add_argument("url", help="HTTPS URL of a hosts-format blocklist")
    fetch_parser.add_argument("--ip", help="Block address for all imported hostnames")
    fetch_parser.add_argument("--no-save", action="store_true", help="Apply in memory only")
    fetch_parser.set_defaults(func=cmd_fetch)

    # 'watch' command
    watch_parser = subparsers.add_parser("watch", help="Follow external edits of the hosts file")
    watch_parser.set_defaults(func=cmd_watch)

    # 'path' command
    path_parser = subparsers.add_parser("path", help="Print the hosts file location")
    path_parser.set_defaults(func=cmd_path)

    # 'check-privileges' command
    privileges_parser = subparsers.add_parser(
        "check-privileges",
        help="Check write access to the hosts file",
    )
    privileges_parser.set_defaults(func=cmd_check_privileges)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except HostsKeeperError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
