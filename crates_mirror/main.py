#!/usr/bin/env python3

import sys
import os
import argparse
import logging
from typing import Dict

from rich.console import Console
from rich.table import Table

from .config.manager import ConfigManager
from .index.source import GitIndexSource
from .metadata.client import MetadataClient
from .state.store import SqliteStateStore
from .clone.executor import CloneExecutor
from .sync.orchestrator import SyncOrchestrator
from .sync.models import IndexUnavailable, SyncStatus
from .storage.manager import StorageManager
from .systemd.service_generator import SystemdServiceGenerator
from .verification.checker import MirrorVerifier

console = Console()

def setup_logging(level: str = "INFO", log_file: str = "crates-mirror.log"):
    """Configure logging for the application"""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    log_dir = os.path.dirname(os.path.abspath(log_file))
    os.makedirs(log_dir, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ]
    )

def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative, got {value}")
    return number

def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser"""
    parser = argparse.ArgumentParser(
        description="Clone the source repository of every crate on crates.io",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s sync                               # Refresh the index and mirror every crate
  %(prog)s sync --output /data/repos --delay-ms 2000
  %(prog)s sync --no-refresh --limit 100      # Trial run against the cached index
  %(prog)s status --verify                    # Cross-check the state database with disk
  %(prog)s storage --cleanup                  # Remove clones interrupted mid-transfer
  %(prog)s setup-systemd --user               # Re-run the sync daily from a user timer
        """
    )

    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
        default=None
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging level (defaults to the configured level)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Mirror every crate repository")
    sync_parser.add_argument(
        "--output", "-o",
        help="Output directory where repositories will be cloned"
    )
    sync_parser.add_argument(
        "--delay-ms", "-d",
        type=non_negative_int,
        help="Delay between API requests in milliseconds"
    )
    sync_parser.add_argument(
        "--no-refresh",
        action="store_true",
        help="Use the cached index without updating it"
    )
    sync_parser.add_argument(
        "--limit",
        type=non_negative_int,
        help="Stop after this many crates have been fetched"
    )

    # Status command
    status_parser = subparsers.add_parser("status", help="Show per-status crate counts")
    status_parser.add_argument("--verify", action="store_true",
                              help="Verify recorded statuses against the mirror directories")

    # Storage command
    storage_parser = subparsers.add_parser("storage", help="Storage management")
    storage_parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Remove staging directories of interrupted clones"
    )
    storage_parser.add_argument(
        "--info",
        action="store_true",
        help="Show storage information"
    )

    # Setup systemd command
    systemd_parser = subparsers.add_parser("setup-systemd", help="Setup systemd service and timer")
    systemd_parser.add_argument(
        "--user", "-u",
        action="store_true",
        help="Create user-level systemd units"
    )
    systemd_parser.add_argument(
        "--no-timer",
        action="store_true",
        help="Don't create the timer unit"
    )

    return parser

def build_orchestrator(config_manager: ConfigManager, state_store) -> SyncOrchestrator:
    config = config_manager.get_config()
    return SyncOrchestrator(
        index_source=GitIndexSource(config.index_url, config.index_path),
        state_store=state_store,
        metadata_client=MetadataClient(
            config.api_url,
            config.user_agent,
            config.delay_seconds,
            timeout=config.request_timeout
        ),
        clone_executor=CloneExecutor(),
        output_path=config.output_path
    )

def print_counts(title: str, counts: Dict[str, int]):
    table = Table(title=title)
    table.add_column("Outcome")
    table.add_column("Crates", justify="right")
    for label, count in counts.items():
        table.add_row(label, str(count))
    console.print(table)

def cmd_sync(args, config_manager: ConfigManager, storage_manager: StorageManager):
    """Handle sync command"""
    config = config_manager.get_config()
    logger = logging.getLogger(__name__)

    space = storage_manager.check_disk_space()
    if not space['sufficient_space']:
        print(f"Error: only {space['available_gb']:.1f}GB free in {config.output_path}, "
              f"{space['required_gb']:.1f}GB required")
        return 1

    storage_manager.cleanup_partial_clones()

    state_store = SqliteStateStore(config.database_path)
    orchestrator = build_orchestrator(config_manager, state_store)

    try:
        report = orchestrator.run(refresh=not args.no_refresh, limit=args.limit)
    except IndexUnavailable as e:
        logger.error(f"Crates index unavailable: {e}")
        return 1
    finally:
        orchestrator.metadata_client.close()
        state_store.close()

    print_counts("Sync results", report.as_dict())
    return 0

def cmd_status(args, config_manager: ConfigManager):
    """Handle status command"""
    config = config_manager.get_config()
    state_store = SqliteStateStore(config.database_path)

    try:
        counts = state_store.count_by_status()
        rows = {status.value: counts[status] for status in SyncStatus}
        unrecognized = state_store.count_unrecognized()
        if unrecognized:
            # Processed again on the next sync
            rows['unknown'] = unrecognized
        print_counts("Crate status", rows)

        if args.verify:
            verifier = MirrorVerifier(config_manager, state_store)
            print("Checking mirror directories... (this may take a moment)")
            results = verifier.verify_all()
            print(f"\n{verifier.get_verification_summary(results)}")

            if results['details']:
                print("\nIssues found:")
                for detail in results['details']:
                    print(f"  ✗ {detail['name']} ({detail['status']}): {detail['details']}")
    finally:
        state_store.close()

    return 0

def cmd_storage(args, storage_manager: StorageManager):
    """Handle storage command"""
    if args.info:
        storage_info = storage_manager.get_storage_info()
        print("=== Storage Information ===")
        print(f"Output path: {storage_info['output_path']}")
        print(f"Mirrored repositories: {storage_info['total_repos']}")
        print(f"Interrupted clones: {storage_info['partial_clones']}")

        disk = storage_info['disk']
        if disk:
            print(f"  Total size: {disk['total_size'] / (1024**3):.1f} GB")
            print(f"  Used: {disk['used_percent']:.1f}%")
            print(f"  Free space: {disk['free_space'] / (1024**3):.1f} GB")

    elif args.cleanup:
        print("Removing interrupted clones...")
        result = storage_manager.cleanup_partial_clones()

        print(f"Cleanup completed:")
        print(f"  Directories deleted: {result['deleted_directories']}")

        if result['errors']:
            print(f"  Errors: {len(result['errors'])}")
            for error in result['errors']:
                print(f"    - {error}")

    else:
        print("Error: Must specify --info or --cleanup")
        return 1

    return 0

def cmd_setup_systemd(args, config_manager: ConfigManager):
    """Handle setup-systemd command"""
    service_gen = SystemdServiceGenerator(config_manager)

    try:
        created = service_gen.create_service_files(
            user_mode=args.user,
            enable_timer=not args.no_timer
        )
    except OSError as e:
        print(f"Error creating systemd units: {e}")
        return 1

    print(f"Service file written to: {created['service_file']}")
    if created['timer_file']:
        print(f"Timer file written to: {created['timer_file']}")
        systemctl = "systemctl --user" if args.user else "sudo systemctl"
        print("\nTo enable the timer, run:")
        print(f"  {systemctl} daemon-reload")
        print(f"  {systemctl} enable --now {created['service_name']}.timer")

    return 0

def main(argv=None):
    """Main entry point"""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        config_manager = ConfigManager(args.config)
        config = config_manager.get_config()
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    if args.command == "sync":
        config_manager.override(output_path=args.output, delay_ms=args.delay_ms)

    # Setup logging
    try:
        setup_logging(args.log_level or config.log_level, config.log_path)
    except OSError as e:
        print(f"Error: cannot open log file {config.log_path}: {e}")
        return 1
    logger = logging.getLogger(__name__)

    try:
        storage_manager = StorageManager(config_manager)

        # Ensure directory structure exists
        storage_manager.ensure_directory_structure()

        # Route to appropriate command handler
        if args.command == "sync":
            return cmd_sync(args, config_manager, storage_manager)

        elif args.command == "status":
            return cmd_status(args, config_manager)

        elif args.command == "storage":
            return cmd_storage(args, storage_manager)

        elif args.command == "setup-systemd":
            return cmd_setup_systemd(args, config_manager)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if (args.log_level or config.log_level).upper() == "DEBUG":
            import traceback
            traceback.print_exc()
        return 1

    return 1

if __name__ == "__main__":
    sys.exit(main())
