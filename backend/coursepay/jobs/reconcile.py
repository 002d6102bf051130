"""
Reconciliation job — run from cron or a scheduler:

    python -m coursepay.jobs.reconcile
"""
import argparse
import sys

from coursepay.database import SessionLocal, init_db
from coursepay.errors import CoursePayError
from coursepay.services.gateways import build_gateway
from coursepay.services.reconciliation import ReconciliationService
from coursepay.utils.logger import get_logger

logger = get_logger("coursepay.jobs.reconcile")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Settle open payments whose callback never arrived")
    parser.parse_args(argv)

    init_db()
    try:
        gateway = build_gateway()
    except CoursePayError as e:
        logger.error("reconciliation aborted: %s", e.message)
        return 1

    db = SessionLocal()
    try:
        summary = ReconciliationService.run(db, gateway)
    finally:
        db.close()

    print(", ".join(f"{key}={value}" for key, value in summary.items()))
    return 1 if summary["errors"] else 0


if __name__ == "__main__":
    sys.exit(main())
