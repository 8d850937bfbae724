# scripts/setup/seed_escalation_rules.py
"""
Insert the default escalation rules. Safe to re-run: rules are matched by
name and existing ones are never overwritten.
Usage: python scripts/setup/seed_escalation_rules.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from vms_monitor.database import SessionLocal, create_tables
from vms_monitor.services.rule_seeder import seed_default_rules


def main():
    print("🔔 Seeding default escalation rules")
    print("=" * 40)
    create_tables()

    db = SessionLocal()
    try:
        added = seed_default_rules(db)
    finally:
        db.close()

    if added:
        print(f"✅ Added {added} rules")
    else:
        print("✅ All default rules already present")


if __name__ == "__main__":
    main()
