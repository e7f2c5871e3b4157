#!/usr/bin/env python3
"""
Run the expired-visit sweep once, outside the HTTP API (e.g. from cron).

Usage:
    python scripts/sweep_expired_visits.py
    python scripts/sweep_expired_visits.py --now 2025-03-15T00:00:00Z
    python scripts/sweep_expired_visits.py --dry-run      # List expired visits only
"""
import argparse
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from plotgate.auth.identity import SqlIdentityProvider
from plotgate.db import SessionLocal
from plotgate.logging import setup_logging
from plotgate.services.expiry import find_expired_visits, sweep_expired_visits
from plotgate.services.time_rules import isoformat, parse_datetime, utcnow
from plotgate.store.sql_provider import SqlDocumentStore


def main(argv=None):
    parser = argparse.ArgumentParser(description="Finalize visits whose QR window has passed")
    parser.add_argument("--now", help="ISO timestamp to sweep at (default: current UTC time)")
    parser.add_argument("--dry-run", action="store_true", help="only list the visits that would be processed")
    args = parser.parse_args(argv)

    setup_logging()
    now = parse_datetime(args.now) if args.now else utcnow()
    print("=" * 80)
    print(f"SWEEP EXPIRED VISITS at {isoformat(now)}")
    print("=" * 80)

    db = SessionLocal()
    try:
        store = SqlDocumentStore(db)
        if args.dry_run:
            expired = find_expired_visits(store, now)
            for visit in expired:
                print(f"  [EXPIRED] Visit ID: {visit['id']}, User ID: {visit['user_id']}, expiry {isoformat(visit['qr_expiry'])}")
            print(f"\nFound {len(expired)} expired visits (dry run, nothing changed)")
            return 0

        result = sweep_expired_visits(store, SqlIdentityProvider(db), now)
        for item in result.processed:
            print(f"  [{item['action'].upper()}] Visit ID: {item['visitId']}, User ID: {item['userId']}")
        for item in result.failures:
            print(f"  [FAILED] Visit ID: {item['visitId']}, User ID: {item['userId']}: {item['error']}")

        print("\n" + "=" * 80)
        print(f"Processed {result.count} visits, {len(result.failures)} failures")
        print("=" * 80)
        return 1 if result.failures else 0
    finally:
        db.close()


if __name__ == '__main__':
    sys.exit(main())
