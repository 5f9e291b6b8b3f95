"""
Seed the airfield reference tables (shifts, areas, locations, fittings).
Safe to run repeatedly: rows that already exist are left untouched.

Usage:
    python scripts/seed_reference_data.py [--database-url URL]
"""
import sys
import os
import argparse

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load environment variables first
try:
    from dotenv import load_dotenv
    load_dotenv()
except Exception as e:
    print(f"WARNING: Could not load .env file: {e}")
    print("Continuing with default values...")


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed airfield reference data")
    parser.add_argument("--database-url", help="Override DATABASE_URL for this run")
    args = parser.parse_args()
    if args.database_url:
        os.environ["DATABASE_URL"] = args.database_url

    from airfield_ops.db import SessionLocal, init_db
    from airfield_ops.services.reference_data import seed_reference_data

    init_db()
    db = SessionLocal()
    try:
        counts = seed_reference_data(db)
    except Exception as e:
        db.rollback()
        print(f"ERROR: Failed to seed reference data: {e}")
        return 1
    finally:
        db.close()

    for table, n in counts.items():
        print(f"[OK] {table}: {n} new row(s)")
    print("Reference data seeded")
    return 0


if __name__ == "__main__":
    sys.exit(main())
