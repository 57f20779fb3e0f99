#!/usr/bin/env python3
"""Backfill detected addresses for businesses that have GPS coordinates.

Finds businesses with latitude and longitude but no detected_address,
reverse-geocodes each through Nominatim and writes the result back.
Requests are spaced out (one per second by default) to respect the
Nominatim usage policy.

Usage:
    # Backfill every business missing an address
    python scripts/populate_detected_addresses.py

    # Preview the first 10 without writing
    python scripts/populate_detected_addresses.py --limit 10 --dry-run
"""

import argparse
import asyncio
import sys
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from src.core.exceptions import AbaDirectoryError, CircuitBreakerOpenError
from src.services.backend import execute, utc_now_iso
from src.services.geocoding import ReverseGeocoder

logger = structlog.get_logger(__name__)


@dataclass
class BackfillSummary:
    """Outcome counts for a backfill run."""

    total: int = 0
    updated: int = 0
    not_found: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors) + self.not_found


def find_businesses_without_address(supabase: Any, limit: Optional[int] = None) -> list[dict]:
    """Businesses with coordinates and no detected address."""
    query = (
        supabase.table("businesses")
        .select("id, name, latitude, longitude, detected_address")
        .not_.is_("latitude", "null")
        .not_.is_("longitude", "null")
        .is_("detected_address", "null")
    )
    if limit:
        query = query.limit(limit)
    return execute(query, "businesses").data or []


async def populate_detected_addresses(
    supabase: Any,
    geocoder: ReverseGeocoder,
    *,
    limit: Optional[int] = None,
    delay: float = 1.0,
    dry_run: bool = False,
) -> BackfillSummary:
    """
    Reverse-geocode and store an address for each business missing one.

    A failure on one business is recorded and the run continues. An open
    circuit breaker stops the run early since every remaining call would fail.
    """
    businesses = await asyncio.to_thread(find_businesses_without_address, supabase, limit)
    summary = BackfillSummary(total=len(businesses))
    logger.info("address_backfill_started", candidates=summary.total, dry_run=dry_run)

    for index, business in enumerate(businesses):
        name = business.get("name") or business["id"]
        try:
            address = await geocoder.reverse(
                float(business["latitude"]), float(business["longitude"])
            )
            if address is None:
                summary.not_found += 1
                print(f"  [-] {name}: no address found")
            else:
                if not dry_run:
                    await asyncio.to_thread(
                        execute,
                        supabase.table("businesses")
                        .update({"detected_address": address, "updated_at": utc_now_iso()})
                        .eq("id", business["id"]),
                        "businesses",
                        "update",
                    )
                summary.updated += 1
                print(f"  [+] {name}: {address}")
        except CircuitBreakerOpenError as e:
            summary.errors.append(f"{name}: {e.message}")
            logger.error("address_backfill_aborted", reason="circuit_open", processed=index)
            break
        except AbaDirectoryError as e:
            summary.errors.append(f"{name}: {e.message}")
            print(f"  [!] {name}: {e.message}")

        if delay and index < len(businesses) - 1:
            await asyncio.sleep(delay)

    logger.info(
        "address_backfill_completed",
        total=summary.total,
        updated=summary.updated,
        errors=summary.error_count,
    )
    return summary


def print_summary(summary: BackfillSummary, dry_run: bool) -> None:
    print("\n" + "=" * 70)
    print("Detected Address Backfill" + (" (dry run)" if dry_run else ""))
    print("=" * 70)
    print(f"\nSuccessfully updated: {summary.updated} businesses")
    print(f"Errors: {summary.error_count} businesses")
    print(f"Total processed: {summary.total} businesses")
    if summary.errors:
        print("\nErrors:")
        for error in summary.errors:
            print(f"  - {error}")
    print("\n" + "=" * 70)


async def run(limit: Optional[int], delay: float, dry_run: bool) -> BackfillSummary:
    from src.api.dependencies import get_supabase
    from src.config.settings import get_settings

    settings = get_settings()
    async with ReverseGeocoder(
        base_url=settings.nominatim_url,
        user_agent=settings.geocoder_user_agent,
        timeout=settings.geocoder_timeout_seconds,
    ) as geocoder:
        return await populate_detected_addresses(
            get_supabase(),
            geocoder,
            limit=limit,
            delay=delay,
            dry_run=dry_run,
        )


def main():
    """Main entry point for the backfill script."""
    parser = argparse.ArgumentParser(
        description="Populate detected_address for businesses with GPS coordinates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Backfill all businesses
    python scripts/populate_detected_addresses.py

    # Process at most 25 businesses, two seconds apart
    python scripts/populate_detected_addresses.py --limit 25 --delay 2

    # Geocode without writing
    python scripts/populate_detected_addresses.py --dry-run
        """
    )

    parser.add_argument(
        '--limit', '-l',
        type=int,
        help='Maximum number of businesses to process'
    )

    parser.add_argument(
        '--delay', '-d',
        type=float,
        default=1.0,
        help='Seconds to wait between geocoding requests (default: 1.0)'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Geocode but do not write addresses'
    )

    args = parser.parse_args()

    summary = asyncio.run(run(args.limit, args.delay, args.dry_run))
    print_summary(summary, args.dry_run)
    sys.exit(0 if not summary.errors else 1)


if __name__ == '__main__':
    main()
