"""
Admin analytics over print jobs.
"""
from datetime import datetime, time

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from printflow.models.base import utcnow
from printflow.models.job import PrintJob, JobStatus, LIVE_STATUSES


class AnalyticsService:
    """Read-only aggregates for the admin dashboard."""
    
    def __init__(self, db: AsyncSession):
        self.db = db

    async def summary(self, vendor_id: str | None = None, now: datetime | None = None) -> dict:
        """
        Job counts, revenue and turnaround.

        Revenue counts only verified jobs. Turnaround is the mean number of
        minutes between creation and the last update of done jobs.
        """
        now = now or utcnow()
        start_of_day = datetime.combine(now.date(), time.min)

        def scoped(stmt):
            if vendor_id is not None:
                stmt = stmt.where(PrintJob.vendor_id == vendor_id)
            return stmt

        total_jobs = (await self.db.execute(scoped(select(func.count(PrintJob.id))))).scalar_one()

        status_rows = await self.db.execute(
            scoped(select(PrintJob.status, func.count(PrintJob.id)).group_by(PrintJob.status))
        )
        status_counts = {status.value: 0 for status in JobStatus}
        for status, count in status_rows.all():
            status_counts[JobStatus(status).value] = count

        revenue = (await self.db.execute(
            scoped(select(func.coalesce(func.sum(PrintJob.amount), 0)).where(PrintJob.payment_verified.is_(True)))
        )).scalar_one()

        completed_today = (await self.db.execute(
            scoped(select(func.count(PrintJob.id)).where(
                PrintJob.status == JobStatus.DONE,
                PrintJob.updated_at >= start_of_day,
            ))
        )).scalar_one()

        active_students = (await self.db.execute(
            scoped(select(func.count(func.distinct(PrintJob.student_id))).where(
                PrintJob.status.in_(LIVE_STATUSES)
            ))
        )).scalar_one()

        done_rows = await self.db.execute(
            scoped(select(PrintJob.created_at, PrintJob.updated_at).where(PrintJob.status == JobStatus.DONE))
        )
        durations = [
            (updated - created).total_seconds() / 60
            for created, updated in done_rows.all()
            if created and updated
        ]
        avg_processing_minutes = round(sum(durations) / len(durations)) if durations else 0

        return {
            "total_jobs": total_jobs,
            "status_counts": status_counts,
            "total_revenue": int(revenue or 0),
            "completed_today": completed_today,
            "active_students": active_students,
            "avg_processing_minutes": avg_processing_minutes,
        }
