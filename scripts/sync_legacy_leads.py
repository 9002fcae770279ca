#!/usr/bin/env python3
"""
Copy rows from the legacy `leads_backup` table into the CRM default pipeline.
Usage: python scripts/sync_legacy_leads.py [--dry-run]

Safe to re-run: already imported rows are skipped, existing leads are never touched.
"""

import json
import sys

from sqlalchemy import text

from imperium.config import settings
from imperium.database import create_db_engine, create_session_factory
from imperium.logging_config import setup_logging
from imperium.services.lead_service import backfill_legacy_leads

LEGACY_QUERY = text("SELECT id, full_name, phone, email, payload FROM leads_backup ORDER BY id")


def load_legacy_rows(db) -> list[dict]:
    rows = []
    for row in db.execute(LEGACY_QUERY).mappings():
        payload = row["payload"]
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except ValueError:
                payload = {}
        rows.append({**row, "payload": payload or {}})
    return rows


def main() -> int:
    dry_run = "--dry-run" in sys.argv[1:]
    setup_logging(settings.log_level)

    engine = create_db_engine(settings.database_url)
    db = create_session_factory(engine)()
    try:
        rows = load_legacy_rows(db)
        print(f"Loaded {len(rows)} legacy rows")

        result = backfill_legacy_leads(db, rows)
        if not result.ok:
            db.rollback()
            print(f"Aborted: {result.error} ({result.error_code})")
            return 1

        if dry_run:
            db.rollback()
            print("Dry run, rolled back")
        else:
            db.commit()
        print(json.dumps(result.value.as_dict(), indent=2))
        return 0
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
