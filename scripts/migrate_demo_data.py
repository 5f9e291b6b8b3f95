"""
Load the demo data set: reference tables, demo accounts, maintenance tasks and
handover notes.

Demo accounts get the password from DEMO_USER_PASSWORD and are skipped when users
already exist.

Usage:
    python scripts/migrate_demo_data.py [--database-url URL]
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
    parser = argparse.ArgumentParser(description="Load demo data")
    parser.add_argument("--database-url", help="Override DATABASE_URL for this run")
    args = parser.parse_args()
    if args.database_url:
        os.environ["DATABASE_URL"] = args.database_url

    from airfield_ops.db import SessionLocal, init_db
    from airfield_ops.models.models import User
    from airfield_ops.services.reference_data import (
        seed_demo_handover_notes,
        seed_demo_tasks,
        seed_demo_users,
        seed_reference_data,
    )

    password = os.getenv("DEMO_USER_PASSWORD")

    init_db()
    db = SessionLocal()
    try:
        print("Seeding reference data...")
        seed_reference_data(db)

        existing = db.query(User).count()
        if existing:
            print(f"[SKIP] {existing} user(s) already present; demo accounts not created")
        elif not password:
            print("[SKIP] DEMO_USER_PASSWORD is not set; demo accounts not created")
        else:
            counts = seed_demo_users(db, password)
            print(f"[OK] demo accounts: {counts['created']} created, {counts['updated']} refreshed")

        print(f"[OK] maintenance tasks: {seed_demo_tasks(db)} new")
        print(f"[OK] handover notes: {seed_demo_handover_notes(db)} new")
    except Exception as e:
        db.rollback()
        print(f"ERROR: Migration failed: {e}")
        return 1
    finally:
        db.close()

    print("Demo data migration completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
