from datetime import datetime, timedelta

from sqlalchemy import update

from printflow.models.job import PrintJob
from printflow.services.analytics_service import AnalyticsService


async def test_summary(engine, users, make_upload, db) -> None:
    student, vendor = users["student"].id, users["vendor"].id
    done = await engine.create_job(student, vendor, make_upload(page_count=5))
    await engine.verify_payment("UTR-1", done.amount, job_id=done.id)
    await engine.approve(done.id, vendor)
    await engine.complete(done.id, vendor)
    await engine.create_job(users["other_student"].id, users["other_vendor"].id, make_upload(page_count=2))

    now = datetime(2026, 3, 2, 15, 0)
    await engine.db.execute(
        update(PrintJob)
        .where(PrintJob.id == done.id)
        .values(created_at=now - timedelta(minutes=30), updated_at=now - timedelta(minutes=5))
    )
    await engine.db.commit()

    summary = await AnalyticsService(db).summary(now=now)

    assert summary["total_jobs"] == 2
    assert summary["status_counts"] == {"pending": 1, "waiting": 0, "printing": 0, "done": 1}
    assert summary["total_revenue"] == 10
    assert summary["completed_today"] == 1
    assert summary["active_students"] == 1
    assert summary["avg_processing_minutes"] == 25

    vendor_only = await AnalyticsService(db).summary(vendor_id=vendor, now=now)
    assert vendor_only["total_jobs"] == 1
    assert vendor_only["active_students"] == 0
