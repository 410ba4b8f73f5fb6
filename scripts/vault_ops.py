#!/usr/bin/env python3
"""
Operator CLI for the memory vault: PIN setup, ingestion, search, stats and wipe.
"""

import argparse
import getpass
import sys
from pathlib import Path

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from nexus.core.config import get_storage_quota
from nexus.core.errors import VaultError
from nexus.core.kernel import VaultKernel
from nexus.core.schema import OriginKind, UnlockResult


def _open_kernel(args) -> VaultKernel:
    return VaultKernel(data_dir=args.data_dir)


def _unlock(kernel: VaultKernel, args):
    pin = args.pin or getpass.getpass("Vault PIN: ")
    if kernel.unlock(pin) == UnlockResult.INVALID:
        print("❌ ERROR: Invalid PIN")
        sys.exit(1)


def set_pin_command(args):
    kernel = _open_kernel(args)
    current_pin = None
    if kernel.has_pin():
        current_pin = args.current_pin or getpass.getpass("Current PIN: ")

    new_pin = args.new_pin or getpass.getpass("New PIN: ")
    if not args.new_pin and getpass.getpass("Confirm PIN: ") != new_pin:
        print("❌ ERROR: PINs do not match")
        sys.exit(1)

    kernel.set_pin(new_pin, current_pin=current_pin)
    print("✅ PIN set")


def ingest_command(args):
    kernel = _open_kernel(args)
    _unlock(kernel, args)
    quota = get_storage_quota()

    if args.file:
        record = kernel.ingest_file(args.file, quota)
    else:
        content = args.text if args.text is not None else sys.stdin.read()
        record = kernel.ingest(content, OriginKind(args.origin), True, quota)

    print(f"✅ Ingested {record.id}")
    kernel.lock()


def search_command(args):
    kernel = _open_kernel(args)
    _unlock(kernel, args)

    results = kernel.search(args.query, args.limit)
    if not results:
        print("No matching records.")
    for scored in results:
        preview = scored.record.content.replace("\n", " ")[:80]
        print(f"{scored.score:.3f}  {scored.record.id}  {preview}")
    kernel.lock()


def stats_command(args):
    kernel = _open_kernel(args)
    _unlock(kernel, args)

    stats = kernel.stats()
    print(f"Records:        {stats['record_count']}")
    print(f"Size:           {stats['size_bytes']} bytes (quota {get_storage_quota()})")
    print(f"Synced:         {stats['synced_count']}")
    print(f"User authored:  {stats['user_authored_count']}")
    for origin, count in stats["by_origin"].items():
        print(f"  {origin}: {count}")
    kernel.lock()


def wipe_command(args):
    if not args.force:
        print("⚠️  WARNING: This irreversibly destroys every record, credential and setting.")
        response = input("Type 'wipe' to continue: ").strip().lower()
        if response != "wipe":
            print("Wipe cancelled.")
            sys.exit(0)

    _open_kernel(args).wipe_all()
    print("✅ Vault wiped")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Nexus memory vault operations")
    parser.add_argument("--data-dir", default=None, help="Vault data directory (default: NEXUS_DATA_DIR)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    set_pin = subparsers.add_parser("set-pin", help="Set or replace the vault PIN")
    set_pin.add_argument("--new-pin", help="New PIN (prompted when omitted)")
    set_pin.add_argument("--current-pin", help="Current PIN when replacing one")
    set_pin.set_defaults(func=set_pin_command)

    ingest = subparsers.add_parser("ingest", help="Ingest text or a file")
    ingest.add_argument("text", nargs="?", help="Text to ingest (stdin when omitted)")
    ingest.add_argument("--file", help="Text file to import")
    ingest.add_argument("--origin", default=OriginKind.USER_INPUT.value,
                        choices=[o.value for o in OriginKind])
    ingest.add_argument("--pin", help="Vault PIN (prompted when omitted)")
    ingest.set_defaults(func=ingest_command)

    search = subparsers.add_parser("search", help="Search stored records")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=4)
    search.add_argument("--pin", help="Vault PIN (prompted when omitted)")
    search.set_defaults(func=search_command)

    stats = subparsers.add_parser("stats", help="Show vault statistics")
    stats.add_argument("--pin", help="Vault PIN (prompted when omitted)")
    stats.set_defaults(func=stats_command)

    wipe = subparsers.add_parser("wipe", help="Destroy all vault data")
    wipe.add_argument("--force", action="store_true", help="Skip the confirmation prompt")
    wipe.set_defaults(func=wipe_command)

    return parser


def main(argv=None):
    load_dotenv()
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except (VaultError, ValueError) as e:
        print(f"❌ ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
