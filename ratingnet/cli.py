#!/usr/bin/env python3
"""
RatingNet Command Line Interface

Usage:
    ratingnet demo [--cache-path <file>]
    ratingnet keygen [--output <file>]
    ratingnet cache list [--path <file>]
    ratingnet cache clear [--path <file>]
    ratingnet format-average <raw>
"""

import argparse
import json
import sys
import time
from datetime import datetime, timezone
from typing import List, Optional

from . import config
from .logging_config import configure_logging


def save_json(data: dict, path: str):
    """Save JSON to file."""
    with open(path, 'w') as f:
        json.dump(data, f, indent=2)


def _iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def cmd_keygen(args):
    """Generate a wallet seed and its address."""
    from .encoding import to_hex
    from .signer import Wallet

    wallet = Wallet.generate()
    identity = {"address": wallet.address, "seed": to_hex(wallet.seed)}

    if args.output:
        save_json(identity, args.output)
        print(f"Wallet saved to: {args.output}")
    else:
        print(json.dumps(identity, indent=2))

    print(f"\nAddress: {wallet.address}", file=sys.stderr)
    return 0


def cmd_cache_list(args):
    """List grants in the signature cache."""
    from .authorization import classify_grant
    from .signature_cache import SqliteSignatureCache

    cache = SqliteSignatureCache(args.path)
    now = time.time()
    rows = []
    for grant in cache.entries():
        rows.append({
            "user_address": grant.user_address,
            "contract_addresses": list(grant.contract_addresses),
            "expires_at": _iso(grant.expires_at),
            "state": classify_grant(grant, now).value,
        })
    cache.close()
    print(json.dumps(rows, indent=2))
    return 0


def cmd_cache_clear(args):
    """Remove every grant from the signature cache."""
    from .signature_cache import SqliteSignatureCache

    cache = SqliteSignatureCache(args.path)
    removed = cache.clear()
    cache.close()
    print(f"Removed {removed} grant(s) from {args.path}")
    return 0


def cmd_format_average(args):
    """Render a raw floor-scaled average."""
    from .client import format_average

    try:
        print(format_average(args.raw))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_demo(args):
    """Run an end-to-end rating and decryption demonstration."""
    from .client import LocalNetwork
    from .errors import Unauthorized
    from .signature_cache import InMemorySignatureCache, SqliteSignatureCache
    from .signer import Wallet

    print("=" * 60)
    print("RatingNet Demonstration")
    print("=" * 60)

    network = LocalNetwork()
    subject = Wallet.generate().address
    print(f"\nEngine:  {network.engine.address}")
    print(f"Subject: {subject}")

    print("\n" + "-" * 60)
    print("Step 1: Three raters submit encrypted scores (4, 5, 3)")
    print("-" * 60)

    for score in (4, 5, 3):
        rater = network.client_for(Wallet.generate())
        stats = rater.submit_rating(subject, score)
        print(f"  {rater.user_address} submitted; count={stats.count} sum={stats.sum}")

    print("\n" + "-" * 60)
    print("Step 2: A viewer requests the average")
    print("-" * 60)

    cache = SqliteSignatureCache(args.cache_path) if args.cache_path else InMemorySignatureCache()
    viewer = network.client_for(Wallet.generate(), cache=cache)
    result = viewer.average(subject)
    print(f"  Grant state: {viewer.authorizer.state([network.engine.address]).value}")
    print(f"  Average: {result.display} (raw {result.raw}) over {viewer.count(subject)} rating(s)")

    print("\n" + "-" * 60)
    print("Step 3: Same viewer asks again (cached grant, no new signature)")
    print("-" * 60)

    again = viewer.average(subject)
    print(f"  Average: {again.display}")
    print(f"  Grants in cache: {len(cache.entries())}")

    print("\n" + "-" * 60)
    print("Step 4: Viewer tries to decrypt the running sum")
    print("-" * 60)

    grant = viewer.authorizer.load_or_sign([network.engine.address])
    try:
        viewer.decryptor.decrypt([(network.engine.query_sum(subject), network.engine.address)], grant)
        print("  Unexpected: sum decrypted")
    except Unauthorized as e:
        print(f"  Denied: {e.code}")

    print("\n" + "=" * 60)
    print("Demonstration complete.")
    print("=" * 60)
    return 0


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        prog="ratingnet",
        description="RatingNet CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ratingnet demo                          Run demonstration
  ratingnet keygen -o wallet.json
  ratingnet cache list
  ratingnet format-average 366
        """
    )
    parser.add_argument("--log-level", default=None, help="Override RATINGNET_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # demo
    demo_parser = subparsers.add_parser("demo", help="Run demonstration")
    demo_parser.add_argument("--cache-path", help="Persist the viewer's grants to this SQLite file")

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate wallet seed and address")
    keygen_parser.add_argument("-o", "--output", help="Output file for wallet JSON")

    # cache
    cache_parser = subparsers.add_parser("cache", help="Inspect the signature cache")
    cache_sub = cache_parser.add_subparsers(dest="cache_command", help="Cache commands")
    for name, help_text in (("list", "List cached grants"), ("clear", "Remove all cached grants")):
        p = cache_sub.add_parser(name, help=help_text)
        p.add_argument("-p", "--path", default=config.SIGNATURE_CACHE_PATH, help="SQLite cache file")

    # format-average
    fmt_parser = subparsers.add_parser("format-average", help="Render a raw average with two decimals")
    fmt_parser.add_argument("raw", type=int, help="Floor-scaled average (e.g. 366)")

    args = parser.parse_args(argv)

    level = args.log_level or ("DEBUG" if config.is_debug() else config.LOG_LEVEL)
    configure_logging(level=level, json_format=config.LOG_JSON)

    if args.command == "demo":
        return cmd_demo(args)
    elif args.command == "keygen":
        return cmd_keygen(args)
    elif args.command == "cache" and args.cache_command == "list":
        return cmd_cache_list(args)
    elif args.command == "cache" and args.cache_command == "clear":
        return cmd_cache_clear(args)
    elif args.command == "format-average":
        return cmd_format_average(args)
    else:
        parser.print_help()
        return 2


if __name__ == "__main__":
    sys.exit(main())
