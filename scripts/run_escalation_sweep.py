"""
Run one escalation sweep. Meant for system cron or any external scheduler:

    */15 * * * * cd /srv/leave-workflow && python -m scripts.run_escalation_sweep

Exit codes: 0 success, 1 sweep failed, 2 another sweep holds the lock.
"""
import argparse
import json
import logging
import sys

from app.core.exceptions import SweepInProgressError
from app.core.logging import setup_logging
from app.database import SessionLocal, init_db
from app.services.escalation_service import run_escalation_sweep

logger = logging.getLogger("scripts.run_escalation_sweep")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Escalate overdue leave approvals")
    parser.add_argument("--org", type=int, default=None, help="Only sweep this organization id")
    parser.add_argument("--dry-run", action="store_true", help="Report decisions without applying them")
    args = parser.parse_args(argv)

    setup_logging()
    init_db()
    db = SessionLocal()
    try:
        report = run_escalation_sweep(db, triggered_by="cli", dry_run=args.dry_run, organization_id=args.org)
    except SweepInProgressError as e:
        logger.warning(e.message)
        return 2
    except Exception:
        logger.exception("Escalation sweep failed")
        return 1
    finally:
        db.close()

    print(json.dumps(report.model_dump(mode="json"), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
