"""Detect or repair holdings drift from the command line.

    python scripts/reconcile_holdings.py                 # report drift for every user
    python scripts/reconcile_holdings.py --user <id>     # one user
    python scripts/reconcile_holdings.py --fix           # rebuild drifted holdings
    python scripts/reconcile_holdings.py --fix --lots    # also rebuild purchase lots
"""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from satsfolio.database import SessionLocal, init_db
from satsfolio.errors import ReconciliationError
from satsfolio.models.user import User
from satsfolio.services import reconciliation_service

logger = logging.getLogger("reconcile_holdings")


def run(user_id=None, fix=False, lots=False) -> int:
    """Returns the number of users whose holdings did not match their trades."""
    init_db()
    db = SessionLocal()
    try:
        query = db.query(User.id, User.username)
        if user_id:
            query = query.filter(User.id == user_id)
        users = query.all()

        drifted = 0
        for uid, username in users:
            try:
                drift = reconciliation_service.detect_drift(db, uid)
            except ReconciliationError as e:
                logger.error("%s (%s): trade history is inconsistent: %s", username, uid, e)
                drifted += 1
                continue

            if not drift:
                logger.info("%s (%s): consistent", username, uid)
            else:
                drifted += 1
                for entry in drift:
                    logger.warning(
                        "%s (%s): %s live=%d expected=%d delta=%d",
                        username, uid, entry["asset"], entry["live"], entry["expected"], entry["delta"],
                    )
                if fix:
                    reconciliation_service.reconcile_holdings(db, uid)
                    logger.info("%s (%s): holdings rebuilt", username, uid)
            if fix and lots:
                count = reconciliation_service.rebuild_lots(db, uid)
                logger.info("%s (%s): %d purchase lots rebuilt", username, uid, count)
        return drifted
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Reconcile holdings against the trade log")
    parser.add_argument("--user", help="Only check this user id")
    parser.add_argument("--fix", action="store_true", help="Rebuild holdings that drifted")
    parser.add_argument("--lots", action="store_true", help="With --fix, also rebuild purchase lots")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    drifted = run(args.user, args.fix, args.lots)
    sys.exit(1 if drifted and not args.fix else 0)


if __name__ == "__main__":
    main()
