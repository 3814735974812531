#!/usr/bin/env python3
"""Leave batch jobs — accrual, quarter-end carry-forward/reset, reset notices.

Intended to be triggered once a day by cron or a scheduler. Each job decides
for itself whether the date is relevant (quarter-end only runs on the last
day of a quarter; notices only go out on a policy's notice date).

Usage:
    python -m scripts.run_leave_jobs                          # today, all jobs
    python -m scripts.run_leave_jobs --date 2025-03-31
    python -m scripts.run_leave_jobs --date 2025-03-28 --job notify

Exit codes:
    0 = all units processed or skipped
    1 = one or more employees failed (see log)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date

from hr_rules.common.calendar import is_quarter_end
from hr_rules.common.log import configure_logging
from hr_rules.database import async_session_factory, engine
from hr_rules.leave.accrual import LeaveAccrualService
from hr_rules.leave.schemas import BatchRunReport

logger = logging.getLogger("run_leave_jobs")

JOBS = ("monthly", "quarter", "notify", "all")


def _log_report(report: BatchRunReport) -> None:
    logger.info(
        "%s %s: processed=%d skipped=%d failed=%d",
        report.operation, report.run_date, report.processed, report.skipped, report.failed,
    )
    for failure in report.failures:
        logger.error(
            "  employee %s policy %s: [%s] %s",
            failure.employee_id, failure.leave_policy_id,
            failure.error_type, failure.detail,
        )


async def run(run_date: date, job: str) -> list[BatchRunReport]:
    service = LeaveAccrualService(async_session_factory)
    reports: list[BatchRunReport] = []

    try:
        if job in ("monthly", "all"):
            reports.append(await service.run_monthly_accrual(run_date))

        if job == "quarter" or (job == "all" and is_quarter_end(run_date)):
            reports.append(await service.run_quarter_end_process(run_date))

        if job in ("notify", "all"):
            reports.append(await service.send_pre_reset_notifications(run_date))
    finally:
        await engine.dispose()

    for report in reports:
        _log_report(report)
    return reports


def main():
    parser = argparse.ArgumentParser(
        description="Leave batch jobs — accrual, carry-forward, reset notices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--date", dest="run_date", type=date.fromisoformat,
                        default=date.today(),
                        help="Run date (YYYY-MM-DD, default: today)")
    parser.add_argument("--job", choices=JOBS, default="all",
                        help="Which job to run (default: all)")
    parser.add_argument("--log-level", type=str, default=None,
                        help="Override LOG_LEVEL from settings")
    args = parser.parse_args()

    configure_logging(args.log_level)
    logger.info("Running leave job '%s' for %s", args.job, args.run_date)

    reports = asyncio.run(run(args.run_date, args.job))
    if any(r.failures for r in reports):
        sys.exit(1)


if __name__ == "__main__":
    main()
