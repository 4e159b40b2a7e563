#!/usr/bin/env python3
"""Line Reassignment CLI.

This module provides a command-line interface for reassigning a telephone
line, its device, and the owner's voicemail and directory phone attributes
from one user to another through the automation host.

Architecture:
    - HostRuntimeClient is the shared HTTP layer for all queries and actions
    - ReassignLineUseCase runs the phased workflow over the lookup/action ports
    - PostgresParkingLedger serves the parked mailbox audit trail when
      DATABASE_URL is set; PostgresLineLock then also guards the line

Environment Variables Required:
    - LINEMOVE_HOST_URL: Automation host base URL
    - LINEMOVE_HOST_TOKEN: Automation host bearer token
    - LINEMOVE_UM_EXTERNAL_SERVICE_ID: Unified messaging service id
      (unless LINEMOVE_ADD_UNIFIED_MESSAGING=false)
    - DATABASE_URL: PostgreSQL connection string (optional)

Example Usage:
    $ python main.py --line-id L1 --device-id D1 --building-id 12 \\
          --current-owner alice --new-owner bob \\
          --label "Bob Smith" --display-name "Bob Smith"
    $ python main.py ... --dry-run                 # Decide everything, change nothing
    $ python main.py ... --json                    # Print the result as JSON
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.linemove.api import (
    HostRuntimeClient,
    LineMoveError,
    close_pool,
    create_pool,
)
from src.linemove.reassignment import (
    ReassignLineUseCase,
    ReassignmentConfig,
    ReassignmentRequest,
    ReassignmentResult,
)
from src.linemove.reassignment.adapters import (
    HostRuntimeAction,
    HostRuntimeLookup,
    PostgresLineLock,
    PostgresParkingLedger,
    RoutingAction,
    RoutingLookup,
    RowMapper,
)

logger = logging.getLogger(__name__)


async def setup_database():
    """Create database connection pool.

    Returns:
        asyncpg.Pool or None if database not configured
    """
    database_url = os.getenv("DATABASE_URL")

    if not database_url:
        return None

    pool = await create_pool(database_url, min_size=1, max_size=5)
    print("[Main] Connected to PostgreSQL")
    return pool


async def build_use_case(client, db_pool, config: ReassignmentConfig) -> ReassignLineUseCase:
    """Wire the workflow to the host and, when configured, the database.

    The parked mailbox ledger takes over the roster query and audit records
    only when its table exists. A dry run never creates the table; it falls
    back to the host if the ledger was never set up.
    """
    lookup = HostRuntimeLookup(client)
    action = HostRuntimeAction(client)
    line_lock = None

    if db_pool is None:
        print("[Main] No database configured, parked mailboxes go through the host")
    else:
        line_lock = PostgresLineLock(db_pool)
        ledger = PostgresParkingLedger(db_pool)

        if config.read_only:
            use_ledger = await ledger.schema_exists()
            if not use_ledger:
                print("[Main] Ledger not initialised, dry run reads parked mailboxes from the host")
        else:
            await ledger.ensure_schema()
            use_ledger = True

        if use_ledger:
            lookup = RoutingLookup(ledger, lookup)
            action = RoutingAction(ledger, action, audit_system=config.audit_system)

    return ReassignLineUseCase(
        lookup,
        action,
        config,
        RowMapper(),
        line_lock=line_lock,
    )


def build_request(args: argparse.Namespace) -> ReassignmentRequest:
    return ReassignmentRequest(
        line_id=args.line_id,
        device_id=args.device_id,
        building_id=args.building_id,
        new_owner_id=args.new_owner,
        new_label=args.label,
        new_display_name=args.display_name,
        external_mask=args.external_mask,
        current_owner_id=args.current_owner,
    )


def print_summary(result: ReassignmentResult) -> None:
    """Print a phase-by-phase summary of a run."""
    mode = " (DRY RUN)" if result.dry_run else ""

    print("\n" + "=" * 60)
    print(f"REASSIGNMENT COMPLETE{mode}")
    print("=" * 60)
    print(f"{'Phase':<32} {'Status':<10} {'Mutations':<10}")
    print("-" * 60)
    for phase in result.phases:
        print(f"{phase.name:<32} {phase.status.value:<10} {phase.mutations:<10}")
    print("-" * 60)

    if result.devices_removed:
        print(f"Devices removed: {', '.join(result.devices_removed)}")
    if result.devices_skipped:
        print(f"Devices kept:    {', '.join(result.devices_skipped)}")
    if result.conflict:
        print(f"Extension conflict: {result.conflict.outcome.value}")
    for record in result.parked_records:
        print(f"Parked [{record.claimant_alias}] on extension [{record.extension}]")
    for warning in result.warnings:
        print(f"WARNING: {warning}")

    print(f"\nTotal mutations: {len(result.mutations)}")


async def run_reassignment(args: argparse.Namespace) -> int:
    """Main reassignment orchestration function.

    Args:
        args: Parsed command-line arguments

    Returns:
        Process exit code
    """
    start_time = datetime.now()
    print(f"[Main] Starting at {start_time.isoformat()}")

    db_pool = None
    try:
        config = ReassignmentConfig.from_env()
        if args.dry_run:
            config = config.with_read_only(True)

        request = build_request(args)
        db_pool = await setup_database()

        async with HostRuntimeClient() as client:
            use_case = await build_use_case(client, db_pool, config)
            result = await use_case.execute(request)

    except LineMoveError as e:
        logger.error(f"Reassignment failed: {e}")
        if args.json:
            print(json.dumps(e.to_dict(), indent=2))
        else:
            print(f"[Main] Reassignment failed: {e}")
        return 1

    finally:
        await close_pool(db_pool)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print_summary(result)

    duration = (datetime.now() - start_time).total_seconds()
    print(f"\n[Main] Completed in {duration:.1f} seconds")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Reassign a telephone line and its device to a new owner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --line-id L1 --device-id D1 --building-id 12 --new-owner bob \\
                 --label "Bob Smith" --display-name "Bob Smith"
  python main.py ... --current-owner alice      # Move the line from alice to bob
  python main.py ... --dry-run                  # Log every decision, change nothing
        """
    )

    # Line selection
    line_group = parser.add_argument_group("Line Selection")
    line_group.add_argument("--line-id", required=True, help="Device-to-line UUID")
    line_group.add_argument("--device-id", required=True, help="Phone UUID")
    line_group.add_argument("--building-id", required=True, help="Building ID")

    # Ownership
    owner_group = parser.add_argument_group("Ownership")
    owner_group.add_argument(
        "--current-owner",
        metavar="ACCOUNT",
        help="Account name of the current owner (omit for an unassigned line)"
    )
    owner_group.add_argument(
        "--new-owner",
        required=True,
        metavar="ACCOUNT",
        help="Account name of the new owner"
    )

    # Line text
    text_group = parser.add_argument_group("Line Text")
    text_group.add_argument("--label", required=True, help="New line label / description")
    text_group.add_argument("--display-name", required=True, help="New alerting / display name")
    text_group.add_argument(
        "--external-mask",
        default="",
        help="External phone number mask (defaults to the building's mask)"
    )

    # Output options
    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Perform every lookup and decision but suppress all changes"
    )
    output_group.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON"
    )
    output_group.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    sys.exit(asyncio.run(run_reassignment(args)))


if __name__ == "__main__":
    main()
