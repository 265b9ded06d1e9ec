#!/usr/bin/env python3
"""
Infrastructure Setup Helper for resumegen

Declares the broker topology (exchange, queue, binding) and checks that
the job store is reachable. Safe to run repeatedly: declaring existing
broker entities is a no-op.

Usage:
    python scripts/setup_infrastructure.py

Requirements:
    - BROKER_URL for the broker step (skipped if unset)
    - JOB_STORE_BACKEND=supabase plus SUPABASE_URL / SUPABASE_SERVICE_KEY
      for the Supabase table check; otherwise the SQLite file is created
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from resumegen.config import config  # noqa: E402
from resumegen.jobs.errors import PersistenceError  # noqa: E402
from resumegen.queue.connection import open_broker_connection  # noqa: E402
from resumegen.queue.publisher import build_topology, declare_topology  # noqa: E402
from resumegen.utils.logging import configure_logging  # noqa: E402


def setup_broker() -> bool:
    """Declare exchange, queue and binding."""
    if not config.broker_configured:
        print("\n⚠️  BROKER_URL not set - skipping broker setup")
        print("   The API will run with the no-op publisher (jobs are never queued).")
        return True

    try:
        connection = open_broker_connection(config.BROKER_URL)
    except ConnectionError as e:
        print(f"\n❌ {e}")
        return False

    try:
        exchange, queue = build_topology()
        declare_topology(connection, queue)
        print("\n✅ Broker topology declared")
        print(f"   exchange:    {exchange.name} ({exchange.type}, durable)")
        print(f"   queue:       {queue.name} (durable)")
        print(f"   routing key: {queue.routing_key}")
        return True
    except Exception as e:
        print(f"\n❌ Topology declaration failed: {e}")
        return False
    finally:
        connection.release()


def check_supabase_table() -> bool:
    """Check that the jobs table exists in Supabase."""
    from resumegen.database.client import SupabaseClientError, get_supabase_admin_client

    if not config.supabase_configured:
        print("\n❌ JOB_STORE_BACKEND=supabase needs SUPABASE_URL and SUPABASE_SERVICE_KEY")
        return False

    try:
        client = get_supabase_admin_client()
    except SupabaseClientError as e:
        print(f"\n❌ {e}")
        return False

    print(f"\n🔗 Connecting to: {config.SUPABASE_URL}")
    try:
        client.table(config.SUPABASE_JOBS_TABLE).select("id").limit(1).execute()
        print(f"✅ Table {config.SUPABASE_JOBS_TABLE} exists")
        return True
    except Exception as e:
        if "does not exist" in str(e):
            print(f"❌ Table {config.SUPABASE_JOBS_TABLE} is missing")
            print("\n   In the Supabase SQL Editor run:")
            print("   supabase/migrations/001_resume_jobs.sql")
        else:
            print(f"❌ Connection failed: {e}")
        return False


async def check_sqlite_store() -> bool:
    """Create the SQLite job database if needed."""
    from resumegen.jobs.database import SQLiteJobStore

    store = SQLiteJobStore(config.JOBS_DB_PATH)
    try:
        await store.connect()
        print(f"\n✅ SQLite job store ready at {config.JOBS_DB_PATH}")
        return True
    except PersistenceError as e:
        print(f"\n❌ {e}")
        return False
    finally:
        await store.close()


def main():
    print("=" * 60)
    print("🚀 resumegen - Infrastructure Setup")
    print("=" * 60)

    configure_logging(config.LOG_LEVEL)

    broker_ok = setup_broker()
    if config.JOB_STORE_BACKEND == "supabase":
        store_ok = check_supabase_table()
    else:
        store_ok = asyncio.run(check_sqlite_store())

    if broker_ok and store_ok:
        print("\n✅ Infrastructure is ready.")
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
