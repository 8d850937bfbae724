# scripts/setup/init_db.py
"""
Initialize database: creates all monitor tables and seeds escalation rules.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py [--no-seed]
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from vms_monitor.database import SessionLocal, create_tables, engine
from vms_monitor.config import settings
from vms_monitor.services.rule_seeder import seed_default_rules


def main():
    print("🗄️  VMS Monitor DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    # Test connection
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except SQLAlchemyError as e:
        print(f"❌ Cannot connect to database: {e}")
        print("\nMake sure PostgreSQL is running:")
        print("  sudo systemctl start postgresql")
        sys.exit(1)

    # Create all tables
    print("\n📋 Creating tables...")
    create_tables()

    tables = sorted(inspect(engine).get_table_names())
    print(f"\n📊 Tables in database ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    if "--no-seed" not in sys.argv:
        db = SessionLocal()
        try:
            added = seed_default_rules(db)
        finally:
            db.close()
        print(f"\n🔔 Escalation rules seeded: {added} new")

    print("\n🎉 Database ready! You can now start the monitors:")
    print(f"   uvicorn vms_monitor.main:app --host {settings.BACKEND_HOST} --port {settings.BACKEND_PORT}")


if __name__ == "__main__":
    main()
