#!/usr/bin/env python3
"""
Supabase Setup Helper for RenderSpace

Verifies the Supabase connection, the render tables and the storage
bucket, and prints migration instructions for whatever is missing.

Usage:
    python scripts/setup_supabase.py

Requirements:
    - SUPABASE_URL and SUPABASE_SERVICE_KEY in the environment or .env
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from renderspace.config import config
from renderspace.database.client import get_supabase_admin_client, SupabaseClientError


REQUIRED_TABLES = [
    "accounts",
    "account_members",
    "render_jobs",
    "credit_transactions",
    "activity_logs",
]


def check_tables(client) -> list[str]:
    """Check which render tables exist. Returns the missing ones."""
    print("\n📋 Checking required tables:")

    missing = []
    for table in REQUIRED_TABLES:
        try:
            client.table(table).select("*").limit(1).execute()
            print(f"   ✅ {table}")
        except Exception as e:
            if "does not exist" in str(e):
                print(f"   ❌ {table} (missing)")
                missing.append(table)
            else:
                print(f"   ⚠️  {table} (error: {e})")

    return missing


def check_bucket(client) -> bool:
    """Check the storage bucket renders are uploaded to."""
    print(f"\n🪣 Checking storage bucket '{config.STORAGE_BUCKET}':")
    try:
        client.storage.get_bucket(config.STORAGE_BUCKET)
        print("   ✅ bucket exists")
        return True
    except Exception as e:
        print(f"   ❌ bucket unavailable ({e})")
        print("   Create it under Storage in the dashboard and make it public.")
        return False


def print_migration_instructions():
    print("\n" + "=" * 60)
    print("📚 MIGRATION INSTRUCTIONS")
    print("=" * 60)
    print("""
1. Open your Supabase Dashboard and go to the SQL Editor.

2. Run: supabase/migrations/001_render_pipeline.sql
   (tables plus the debit_render_credits and add_credits functions)

3. Run this script again to verify.
""")


def print_env_template():
    print("\n" + "=" * 60)
    print("🔧 REQUIRED ENVIRONMENT VARIABLES")
    print("=" * 60)
    print("""
# Supabase (from your Supabase Dashboard > Settings > API)
SUPABASE_URL=https://xxxxx.supabase.co
SUPABASE_ANON_KEY=eyJhbGci...
SUPABASE_SERVICE_KEY=eyJhbGci...
STORAGE_BACKEND=supabase
""")


def main():
    print("=" * 60)
    print("🚀 RenderSpace - Supabase Setup Helper")
    print("=" * 60)

    try:
        client = get_supabase_admin_client()
    except SupabaseClientError as e:
        print(f"\n❌ {e}")
        print_env_template()
        return 1

    print(f"\n🔗 Connecting to: {config.SUPABASE_URL}")

    missing = check_tables(client)
    if missing:
        print(f"\n⚠️  Missing {len(missing)} table(s)")
        print_migration_instructions()
        return 1

    print("\n✅ All tables exist!")

    if config.STORAGE_BACKEND == "supabase" and not check_bucket(client):
        return 1

    print("\nYour Supabase project is ready for RenderSpace.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
