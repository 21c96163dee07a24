#!/usr/bin/env python3
"""
Materialize time slots now instead of waiting for the daily job.
Run: cd backend && python scripts/materialize_slots.py [DAYS] [BRANCH_ID]
Without BRANCH_ID every branch with booking settings is materialized.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tablebook.config import settings
from tablebook.db.session import build_engine, build_session_factory
from tablebook.scheduler.materialize_job import run_materialize_job
from tablebook.services.materializer import materialize


def main():
    days = int(sys.argv[1]) if len(sys.argv) > 1 else settings.materialize_window_days
    branch_id = int(sys.argv[2]) if len(sys.argv) > 2 else None
    engine = build_engine(settings.database_url)
    session_factory = build_session_factory(engine)
    try:
        if branch_id is None:
            created = run_materialize_job(session_factory, days=days)
            for bid, n in created.items():
                print(f"branch {bid}: {n} slots created")
            print(f"Done. {sum(created.values())} slots over {days} days for {len(created)} branches")
        else:
            db = session_factory()
            try:
                n = materialize(db, branch_id, days)
            finally:
                db.close()
            print(f"Done. branch {branch_id}: {n} slots created over {days} days")
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
