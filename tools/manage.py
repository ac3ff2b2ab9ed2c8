#!/usr/bin/env python3
"""
ClaimGate Management CLI

Commands for operating the claim gate:
- init-schema: Create the anonymous_claims table in PostgreSQL
- purge-expired: Delete address records whose window has elapsed
- show-claim: Show the stored claim for one network address
- list-catalog: List catalog editions (with links when asked)
- device-status: Show the device claim record in a storage directory
- device-reset: Delete the device claim record in a storage directory

Usage:
    python -m tools.manage <command> [options]

Examples:
    python -m tools.manage init-schema
    python -m tools.manage show-claim 203.0.113.7
    python -m tools.manage device-status --storage-dir ~/.claimgate
"""

import argparse
import json
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

DEFAULT_STORAGE_DIR = Path.home() / ".claimgate"


def _open_store():
    from claimgate.db import create_claim_store
    return create_claim_store()


def cmd_init_schema(args):
    """Create the claims table and index."""
    from claimgate.db import ClaimStoreError, PostgresClaimStore

    try:
        store = _open_store()
    except ClaimStoreError as e:
        print(f"[FAIL] {e}")
        return 1

    if not isinstance(store, PostgresClaimStore):
        print("No PostgreSQL configured (set DATABASE_URL). Nothing to do.")
        return 1

    # create_postgres_store() already ran ensure_schema(); run it again so
    # the command is explicit about what it did
    try:
        store.ensure_schema()
    except ClaimStoreError as e:
        print(f"[FAIL] {e}")
        return 1
    print("[OK] Schema ready: anonymous_claims")
    return 0


def cmd_purge_expired(args):
    """Remove address records older than the claim window."""
    from claimgate.core import ClaimPolicy, ClaimService, StorageError, default_catalog
    from claimgate.db import ClaimStoreError

    try:
        store = _open_store()
    except ClaimStoreError as e:
        print(f"[FAIL] {e}")
        return 1

    policy = ClaimPolicy.from_env()
    service = ClaimService(store, default_catalog(), policy)

    try:
        removed = service.purge_expired()
        remaining = store.count()
    except StorageError as e:
        print(f"[FAIL] {e.detail}")
        return 1
    except ClaimStoreError as e:
        print(f"[FAIL] {e}")
        return 1

    print(f"[OK] Purged {removed} record(s) older than {policy.window_days} days")
    print(f"  Remaining records: {remaining}")
    return 0


def cmd_show_claim(args):
    """Show the claim record for one address."""
    from datetime import datetime, timezone

    from claimgate.core import ClaimPolicy, parse_ip
    from claimgate.db import ClaimStoreError

    address = parse_ip(args.address)
    if address is None:
        print(f"Error: {args.address!r} is not a valid IP address")
        return 1

    try:
        store = _open_store()
        record = store.get(address)
    except ClaimStoreError as e:
        print(f"[FAIL] {e}")
        return 1

    if record is None:
        print(f"No claim recorded for {address}")
        return 0

    policy = ClaimPolicy.from_env()
    now = datetime.now(timezone.utc)
    blocked = record.last_claimed_at >= policy.window_start(now)
    reopens = record.last_claimed_at + policy.window

    print(f"Address:         {record.address}")
    print(f"Claimed option:  {record.claimed_option}")
    print(f"Last claimed at: {record.last_claimed_at.isoformat()}")
    print(f"Caller agent:    {record.caller_agent or '-'}")
    if blocked:
        print(f"Status:          [BLOCKED] until {reopens.isoformat()}")
    else:
        print("Status:          [OPEN] may claim again")
    return 0


def cmd_list_catalog(args):
    """List all catalog editions."""
    from claimgate.core import default_catalog

    catalog = default_catalog()

    if args.json:
        if args.links:
            data = [entry.model_dump() for entry in catalog]
        else:
            data = [option.model_dump(by_alias=True) for option in catalog.public_options()]
        print(json.dumps(data, indent=2, ensure_ascii=False))
        return 0

    print(f"{len(catalog)} editions:\n")
    for entry in catalog:
        print(f"  {entry.option_id:<16} {entry.name}")
        if args.links:
            print(f"  {'':<16} {entry.linkage} (code: {entry.extraction_code})")
    return 0


def _device_guard(args):
    from claimgate.client import DeviceClaimGuard, FileStorage

    return DeviceClaimGuard(FileStorage(Path(args.storage_dir).expanduser()))


def cmd_device_status(args):
    """Show the device claim record."""
    from claimgate.client import StorageStatus, remaining_days_message

    guard = _device_guard(args)
    result = guard.load_result()

    print(f"Storage: {args.storage_dir}")
    print(f"  Status: {result.status.value}")

    if result.status == StorageStatus.UNAVAILABLE:
        return 1
    if result.record is None:
        print("  No claim recorded on this device")
        return 0

    record = result.record
    print(f"  Selected option: {record.selected_option}")
    print(f"  Claimed at:      {record.claimed_at.isoformat()}")
    print(f"  Expires at:      {record.expires_at.isoformat()}")
    print(f"  Fingerprint:     {record.fingerprint or '-'}")
    print(f"  Active:          {'yes' if guard.is_valid() else 'no'}")
    print(f"  {remaining_days_message(guard.remaining_days())}")
    return 0


def cmd_device_reset(args):
    """Delete the device claim record."""
    from claimgate.client import StorageStatus

    guard = _device_guard(args)
    status = guard.clear()
    if status != StorageStatus.OK:
        print(f"[FAIL] Storage {status.value}")
        return 1

    print(f"[OK] Device claim record cleared ({args.storage_dir})")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="ClaimGate Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-schema
    subparsers.add_parser(
        "init-schema",
        help="Create the claims table in PostgreSQL"
    )

    # purge-expired
    subparsers.add_parser(
        "purge-expired",
        help="Delete address records older than the claim window"
    )

    # show-claim
    p_show = subparsers.add_parser(
        "show-claim",
        help="Show the claim recorded for a network address"
    )
    p_show.add_argument("address", help="IPv4 or IPv6 address")

    # list-catalog
    p_catalog = subparsers.add_parser(
        "list-catalog",
        help="List catalog editions"
    )
    p_catalog.add_argument("--links", action="store_true", help="Include links and extraction codes")
    p_catalog.add_argument("--json", action="store_true", help="Print JSON")

    # device-status / device-reset
    for name, help_text in (
        ("device-status", "Show the device claim record"),
        ("device-reset", "Delete the device claim record"),
    ):
        p_device = subparsers.add_parser(name, help=help_text)
        p_device.add_argument(
            "--storage-dir",
            default=str(DEFAULT_STORAGE_DIR),
            help=f"Device storage directory (default: {DEFAULT_STORAGE_DIR})",
        )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "init-schema": cmd_init_schema,
        "purge-expired": cmd_purge_expired,
        "show-claim": cmd_show_claim,
        "list-catalog": cmd_list_catalog,
        "device-status": cmd_device_status,
        "device-reset": cmd_device_reset,
    }

    return commands[args.command](args) or 0


if __name__ == "__main__":
    sys.exit(main())
