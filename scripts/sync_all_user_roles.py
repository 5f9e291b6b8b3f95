"""
Push every users row role into the matching auth metadata.

Usage:
    python scripts/sync_all_user_roles.py [--database-url URL]
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
    parser = argparse.ArgumentParser(description="Sync all user roles into auth metadata")
    parser.add_argument("--database-url", help="Override DATABASE_URL for this run")
    args = parser.parse_args()
    if args.database_url:
        os.environ["DATABASE_URL"] = args.database_url

    from airfield_ops.db import SessionLocal
    from airfield_ops.services.role_sync import sync_all_user_roles

    db = SessionLocal()
    try:
        result = sync_all_user_roles(db)
    finally:
        db.close()

    print(f"Synced: {result.synced}  Failed: {result.failed}")
    for err in result.errors:
        print(f"[FAIL] {err}")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
