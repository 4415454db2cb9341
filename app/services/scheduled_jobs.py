"""
Scheduled Jobs
==============

Background tasks for maintenance operations:
- Scheduled report generation
- Export history expiration
- Stale pending payment cleanup

Run from cron or any scheduler:

    python -m app.services.scheduled_jobs run_due_reports
"""

import argparse
import asyncio
import json
import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import Payment, PaymentStatus
from app.services.export_service import ExportService
from app.services.report_service import ReportService, calculate_next_run, report_window
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)

STALE_PAYMENT_HOURS = 24


class ScheduledJobService:
    """Service for scheduled background jobs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def run_due_reports(self) -> dict:
        """
        Generate every active scheduled report whose next run has passed.

        Run hourly.

        Returns:
            Summary of processed reports; per-report failures are collected
            in ``errors`` rather than raised.
        """
        now = utc_now()
        reports = await ReportService(self.db).due_reports(now)
        exports = ExportService(self.db)

        processed = 0
        errors = []

        for report in reports:
            report_id = report.report_id
            start, end = report_window(report.frequency, now)
            options = report.options or {}
            try:
                # A failing report rolls back to its savepoint only
                async with self.db.begin_nested():
                    export = await exports.generate(
                        report.user_id,
                        report.format,
                        report.data_type,
                        start,
                        end,
                        group_by=options.get("group_by", "day"),
                        include_details=bool(options.get("include_details", False)),
                    )
                logger.info(
                    "Scheduled report %s generated %s for %d recipient(s)",
                    report_id,
                    export.filename,
                    len(report.recipients or []),
                )
                processed += 1
            except Exception as e:
                logger.error("Scheduled report %s failed: %s", report_id, e)
                errors.append({
                    "report_id": str(report_id),
                    "error": str(e),
                })

            report.last_run = now
            report.next_run = calculate_next_run(report.frequency, now)

        await self.db.flush()

        return {
            "job": "run_due_reports",
            "processed": processed,
            "errors": errors,
            "run_at": now.isoformat(),
        }

    async def expire_exports(self) -> dict:
        """
        Mark completed exports past their expiry as expired.

        Run daily at 00:00 UTC.
        """
        now = utc_now()
        expired = await ExportService(self.db).expire_completed()

        return {
            "job": "expire_exports",
            "processed": expired,
            "errors": [],
            "run_at": now.isoformat(),
        }

    async def expire_stale_pending_payments(self) -> dict:
        """
        Fail PENDING payments that never reached the gateway.

        A payment is stale once it is older than 24 hours and still has no
        Stripe payment id.
        """
        now = utc_now()
        cutoff = now - timedelta(hours=STALE_PAYMENT_HOURS)

        result = await self.db.execute(
            select(Payment).where(
                Payment.status == PaymentStatus.PENDING,
                Payment.stripe_payment_id.is_(None),
                Payment.created_at < cutoff,
            )
        )
        payments = list(result.scalars().all())

        for payment in payments:
            payment.status = PaymentStatus.FAILED
            payment.metadata_ = {
                **(payment.metadata_ or {}),
                "expired": True,
                "expiredAt": now.isoformat(),
            }

        if payments:
            await self.db.flush()
            logger.info("Expired %d stale pending payment(s)", len(payments))

        return {
            "job": "expire_stale_pending_payments",
            "processed": len(payments),
            "errors": [],
            "run_at": now.isoformat(),
        }


JOBS = {
    "run_due_reports": ScheduledJobService.run_due_reports,
    "expire_exports": ScheduledJobService.expire_exports,
    "expire_stale_pending_payments": ScheduledJobService.expire_stale_pending_payments,
}


async def run_job(name: str) -> dict:
    """Run one job in its own session and commit the result."""
    from app.db.session import close_db, get_session_factory

    session_factory = get_session_factory()
    try:
        async with session_factory() as session:
            try:
                summary = await JOBS[name](ScheduledJobService(session))
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return summary
    finally:
        await close_db()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Run a scheduled maintenance job.")
    parser.add_argument("job", choices=sorted(JOBS))
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    summary = asyncio.run(run_job(args.job))
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
