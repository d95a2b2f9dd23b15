#!/usr/bin/env python3
"""
MRD Tag Tracker - Main Entry Point.

Usage:
    python main.py products add <name> [--category c] (--ready M --discard M | --start-of-day N | --end-of-day N)
    python main.py products list [--active]
    python main.py locations add <name> [--timezone Europe/London]
    python main.py locations list
    python main.py tags create <product_id> <location_id> --by <employee> [--made 2024-01-01T10:00]
    python main.py tags list [--location <id>] [--status expired] [--search text]
    python main.py tags summary [--location <id>]
    python main.py tags print <tag_id>
    python main.py tags discard <tag_id>
    python main.py watch [--location <id>] [--interval 30]
"""

import argparse
import logging
import sys
import time

from dotenv import load_dotenv
load_dotenv()  # before settings are read

from config.settings import (
    ALERT_CHECK_INTERVAL_SECONDS,
    DATA_DIR,
    LOG_FORMAT,
    LOG_LEVEL,
    NOTIFY_FILE_PATH,
    NOTIFY_WEBHOOK_URL,
)
from tagtracker.alert_scheduler import AlertScheduler, ViewerScope
from tagtracker.models import Location, Product
from tagtracker.notifications.dispatcher import NotificationDispatcher
from tagtracker.policy import EndOfDay, InvalidPolicy, RelativeMinutes, StartOfDay
from tagtracker.registry import (
    LocationNotFound,
    LocationRegistry,
    ProductNotFound,
    ProductRegistry,
    TagNotFound,
    TagRegistry,
)
from tagtracker.status import TagStatus
from tagtracker.tags import TagService
from tagtracker.utils import parse_dt


def _tag_registry():
    return TagRegistry(str(DATA_DIR / "tags.json"))


def _product_registry():
    return ProductRegistry(str(DATA_DIR / "products.json"))


def _location_registry():
    return LocationRegistry(str(DATA_DIR / "locations.json"))


def _tag_service():
    return TagService(_tag_registry(), _product_registry(), _location_registry())


def _fail(message):
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


# ============================================================
# Product & location commands
# ============================================================

def cmd_products_add(args):
    """Add a product with its time policy."""
    if args.start_of_day is not None:
        policy = StartOfDay(day_offset=args.start_of_day)
    elif args.end_of_day is not None:
        policy = EndOfDay(day_offset=args.end_of_day)
    else:
        policy = RelativeMinutes(args.ready, args.discard)

    product = Product(
        name=args.name,
        category=args.category or "",
        policy=policy,
        storage_requirements=args.storage or "",
        allergens=args.allergens or "",
    )
    try:
        _product_registry().add(product)
    except InvalidPolicy as exc:
        _fail(exc)

    print(f"Product added: {product.name}")
    print(f"  ID: {product.product_id}")
    print(f"  Policy: {_describe_policy(product.policy)}")


def cmd_products_list(args):
    """List products."""
    products = _product_registry().list_all(active_only=args.active)
    if not products:
        print("No products found.")
        return

    print(f"\n{'ID':14s} {'Name':28s} {'Category':16s} {'Policy':32s} {'Active':6s}")
    print("-" * 100)
    for p in products:
        print(
            f"{p.product_id:14s} {p.name:28s} {p.category:16s} "
            f"{_describe_policy(p.policy):32s} {'yes' if p.is_active else 'no':6s}"
        )
    print(f"\nTotal: {len(products)} product(s)")


def _describe_policy(policy) -> str:
    if isinstance(policy, RelativeMinutes):
        return f"ready +{policy.ready_offset_min}m, discard +{policy.discard_offset_min}m"
    kind = "start of day" if isinstance(policy, StartOfDay) else "end of day"
    return f"{kind} +{policy.day_offset}d"


def cmd_locations_add(args):
    """Add a location."""
    location = Location(
        name=args.name,
        address=args.address or "",
        phone=args.phone or "",
        timezone=args.timezone or "",
    )
    _location_registry().add(location)
    print(f"Location added: {location.name}")
    print(f"  ID: {location.location_id}")
    if location.timezone:
        print(f"  Timezone: {location.timezone}")


def cmd_locations_list(args):
    """List locations."""
    locations = _location_registry().list_all()
    if not locations:
        print("No locations found.")
        return
    for loc in locations:
        print(f"  {loc.location_id:14s} {loc.name:30s} {loc.timezone or '(local)'}")


# ============================================================
# Tag commands
# ============================================================

def cmd_tags_create(args):
    """Create a tag; ready and discard times come from the product policy."""
    try:
        made_at = parse_dt(args.made)
    except ValueError:
        _fail(f"Invalid made time: {args.made}")

    try:
        tag = _tag_service().create_tag(
            product_id=args.product_id,
            location_id=args.location_id,
            created_by=args.by,
            made_at=made_at,
            quantity=args.quantity,
            batch_number=args.batch or "",
            notes=args.notes or "",
        )
    except ProductNotFound:
        _fail(f"Unknown or inactive product: {args.product_id}")
    except LocationNotFound:
        _fail(f"Unknown location: {args.location_id}")
    except InvalidPolicy as exc:
        _fail(f"Invalid time policy: {exc}")

    print(f"Tag created: {tag.tag_id}")
    print(f"  Product: {tag.product_name}")
    print(f"  Made:    {tag.made_at.isoformat()}")
    print(f"  Ready:   {tag.ready_at.isoformat()}")
    print(f"  Discard: {tag.discard_at.isoformat()}")


def cmd_tags_list(args):
    """List active tags with their live status."""
    status = TagStatus(args.status) if args.status else None
    results = _tag_service().list_tags(
        location_id=args.location, status=status, query=args.search,
    )
    if not results:
        print("No active tags.")
        return

    print(f"\n{'Tag':18s} {'Product':24s} {'Location':18s} {'Status':14s} {'Remaining':10s} {'Discard':20s}")
    print("-" * 108)
    for tag, verdict in results:
        print(
            f"{tag.tag_id:18s} {tag.product_name:24s} {tag.location_name:18s} "
            f"{verdict.label:14s} {verdict.time_remaining:10s} "
            f"{tag.discard_at.strftime('%Y-%m-%d %H:%M %Z'):20s}"
        )
    print(f"\nTotal: {len(results)} tag(s)")


def cmd_tags_summary(args):
    """Show counts per status."""
    counts = _tag_service().status_counts(args.location)
    print(f"\n  Active tags:    {counts['total']}")
    print(f"  Preparing:      {counts[TagStatus.PREPARING.value]}")
    print(f"  Ready:          {counts[TagStatus.READY.value]}")
    print(f"  Expiring soon:  {counts[TagStatus.EXPIRING_SOON.value]}")
    print(f"  Expired:        {counts[TagStatus.EXPIRED.value]}\n")


def cmd_tags_print(args):
    try:
        _tag_service().mark_printed(args.tag_id)
    except TagNotFound:
        _fail(f"Tag not found: {args.tag_id}")
    print(f"Tag {args.tag_id} marked as printed.")


def cmd_tags_discard(args):
    try:
        _tag_service().discard(args.tag_id)
    except TagNotFound:
        _fail(f"Tag not found: {args.tag_id}")
    print(f"Tag {args.tag_id} discarded.")


# ============================================================
# Alert loop
# ============================================================

def cmd_watch(args):
    """Run the alert loop in the foreground, printing notifications."""
    scope = ViewerScope(location_id=args.location)
    alerts = AlertScheduler(_tag_registry(), scope, interval=args.interval)
    dispatcher = NotificationDispatcher(
        file_path=NOTIFY_FILE_PATH,
        console=True,
        webhook_url=NOTIFY_WEBHOOK_URL,
    )
    inbox = alerts.subscribe()
    alerts.start()

    print(f"Watching tags for scope {scope.key} every {args.interval}s (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
            dispatcher.drain(inbox)
    except KeyboardInterrupt:
        pass
    finally:
        alerts.stop()
        dispatcher.drain(inbox)


# ============================================================
# Parser
# ============================================================

def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(description="MRD Tag Tracker")
    subparsers = parser.add_subparsers(dest="module", help="Module")

    # --- Product commands ---
    prod_parser = subparsers.add_parser("products", help="Product catalogue")
    prod_sub = prod_parser.add_subparsers(dest="command")

    padd = prod_sub.add_parser("add", help="Add a product")
    padd.add_argument("name", help="Product name")
    padd.add_argument("--category", help="Category")
    padd.add_argument("--ready", type=int, default=0, help="Minutes from made to ready")
    padd.add_argument("--discard", type=int, default=0, help="Minutes from made to discard")
    padd.add_argument("--start-of-day", type=int, help="Discard at midnight starting day N after made")
    padd.add_argument("--end-of-day", type=int, help="Discard at the end of day N after made")
    padd.add_argument("--storage", help="Storage requirements")
    padd.add_argument("--allergens", help="Allergens")
    padd.set_defaults(func=cmd_products_add)

    plist = prod_sub.add_parser("list", help="List products")
    plist.add_argument("--active", action="store_true", help="Only active products")
    plist.set_defaults(func=cmd_products_list)

    # --- Location commands ---
    loc_parser = subparsers.add_parser("locations", help="Locations")
    loc_sub = loc_parser.add_subparsers(dest="command")

    ladd = loc_sub.add_parser("add", help="Add a location")
    ladd.add_argument("name", help="Location name")
    ladd.add_argument("--address", help="Address")
    ladd.add_argument("--phone", help="Phone")
    ladd.add_argument("--timezone", help="IANA timezone, e.g. Europe/London")
    ladd.set_defaults(func=cmd_locations_add)

    llist = loc_sub.add_parser("list", help="List locations")
    llist.set_defaults(func=cmd_locations_list)

    # --- Tag commands ---
    tag_parser = subparsers.add_parser("tags", help="MRD tags")
    tag_sub = tag_parser.add_subparsers(dest="command")

    tcreate = tag_sub.add_parser("create", help="Create a tag")
    tcreate.add_argument("product_id")
    tcreate.add_argument("location_id")
    tcreate.add_argument("--by", required=True, help="Employee creating the tag")
    tcreate.add_argument("--made", help="Made time (ISO 8601, default now)")
    tcreate.add_argument("--quantity", type=int, default=1)
    tcreate.add_argument("--batch", help="Batch number")
    tcreate.add_argument("--notes", help="Notes")
    tcreate.set_defaults(func=cmd_tags_create)

    tlist = tag_sub.add_parser("list", help="List active tags")
    tlist.add_argument("--location", help="Filter by location ID")
    tlist.add_argument("--status", choices=[s.value for s in TagStatus])
    tlist.add_argument("--search", help="Search product, location or batch")
    tlist.set_defaults(func=cmd_tags_list)

    tsum = tag_sub.add_parser("summary", help="Counts per status")
    tsum.add_argument("--location", help="Filter by location ID")
    tsum.set_defaults(func=cmd_tags_summary)

    tprint = tag_sub.add_parser("print", help="Mark a tag as printed")
    tprint.add_argument("tag_id")
    tprint.set_defaults(func=cmd_tags_print)

    tdisc = tag_sub.add_parser("discard", help="Discard a tag")
    tdisc.add_argument("tag_id")
    tdisc.set_defaults(func=cmd_tags_discard)

    # --- Alert loop ---
    watch = subparsers.add_parser("watch", help="Run the alert loop")
    watch.add_argument("--location", help="Only watch one location")
    watch.add_argument("--interval", type=int, default=ALERT_CHECK_INTERVAL_SECONDS)
    watch.set_defaults(func=cmd_watch)

    return parser


def main():
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    parser = build_parser()
    args = parser.parse_args()

    if not args.module:
        parser.print_help()
        sys.exit(1)

    if not hasattr(args, "func"):
        parser.parse_args([args.module, "--help"])
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
