from datetime import datetime

import pytest
from sqlalchemy import update

from printflow.errors import (
    AmountMismatch,
    DuplicateReference,
    InvalidStateTransition,
    JobNotFound,
    JobValidationError,
    NotAuthorized,
    ServiceClosed,
    VendorNotFound,
)
from printflow.models.job import JobStatus, PrintJob, can_transition
from printflow.services.queue_engine import drain_background_tasks


async def _paid_job(engine, users, make_upload, reference, student="student", vendor="vendor", **spec):
    job = await engine.create_job(users[student].id, users[vendor].id, make_upload(**spec))
    [job] = await engine.verify_payment(reference, job.amount, job_id=job.id, student_id=users[student].id)
    return job


# ---------------------------------------------------------------------------
# createJob / createBatch
# ---------------------------------------------------------------------------


async def test_tokens_start_at_1000_and_increase(engine, users, make_upload) -> None:
    first = await engine.create_job(users["student"].id, users["vendor"].id, make_upload())
    second = await engine.create_job(users["other_student"].id, users["other_vendor"].id, make_upload())
    assert first.token_number == 1000
    assert second.token_number == 1001


async def test_new_job_is_pending_and_unpaid(engine, users, make_upload, blob_store) -> None:
    job = await engine.create_job(users["student"].id, users["vendor"].id, make_upload(page_count=5))
    assert job.status == JobStatus.PENDING
    assert job.payment_verified is False
    assert job.payment_reference is None
    assert job.amount == 10
    assert job.file_ref in blob_store
    assert await engine.get_queue_position(job.id) == 0


async def test_batch_shares_id_and_sums_amounts(engine, users, make_upload, broadcaster, events) -> None:
    jobs = await engine.create_batch(users["student"].id, users["vendor"].id, [
        make_upload(page_count=5),
        make_upload(page_count=3, color_mode="color", copies=2, filename="poster.pdf"),
    ])
    await broadcaster.drain()

    assert [job.amount for job in jobs] == [10, 30]
    assert sum(job.amount for job in jobs) == 40
    assert len({job.batch_id for job in jobs}) == 1
    assert [job.token_number for job in jobs] == [1000, 1001]
    created = events.of_type("job.created")
    assert [e["payload"]["job_id"] for e in created] == [job.id for job in jobs]


async def test_invalid_file_rejects_whole_batch(engine, users, make_upload, blob_store) -> None:
    with pytest.raises(JobValidationError) as exc_info:
        await engine.create_batch(users["student"].id, users["vendor"].id, [
            make_upload(page_count=2),
            make_upload(page_count=2, total_pages=4, page_range="3-9"),
        ])

    assert exc_info.value.errors == {"files[1]": "The max number of pages in the uploaded file is 4"}
    assert len(blob_store) == 0
    assert await engine.list_live(student_id=users["student"].id) == []


async def test_empty_upload_rejected(engine, users, make_upload) -> None:
    with pytest.raises(JobValidationError):
        await engine.create_batch(users["student"].id, users["vendor"].id, [])
    with pytest.raises(JobValidationError):
        await engine.create_job(users["student"].id, users["vendor"].id, make_upload(content=b""))


async def test_unknown_vendor(engine, users, make_upload) -> None:
    with pytest.raises(VendorNotFound):
        await engine.create_job(users["student"].id, users["other_student"].id, make_upload())


async def test_closed_vendor_rejects_uploads(engine, users, make_upload, blob_store) -> None:
    await engine.vendors.set_status(users["vendor"].id, False)
    with pytest.raises(ServiceClosed):
        await engine.create_job(users["student"].id, users["vendor"].id, make_upload())
    assert len(blob_store) == 0

    # Other vendors are unaffected
    job = await engine.create_job(users["student"].id, users["other_vendor"].id, make_upload())
    assert job.status == JobStatus.PENDING


async def test_without_payment_policy_jobs_are_admitted_on_upload(make_engine, users, make_upload) -> None:
    engine = make_engine(require_payment_before_queue=False)
    job = await engine.create_job(users["student"].id, users["vendor"].id, make_upload())
    assert job.status == JobStatus.WAITING
    assert job.payment_verified is True
    assert job.payment_reference is None
    assert await engine.get_queue_position(job.id) == 1


# ---------------------------------------------------------------------------
# verifyPayment
# ---------------------------------------------------------------------------


async def test_verify_payment_admits_whole_batch(engine, users, make_upload, broadcaster, events) -> None:
    jobs = await engine.create_batch(users["student"].id, users["vendor"].id, [
        make_upload(page_count=5),
        make_upload(page_count=3, color_mode="color", copies=2),
    ])
    events.clear()

    admitted = await engine.verify_payment("UTR-1001", 40, job_id=jobs[0].id, student_id=users["student"].id)
    await broadcaster.drain()

    assert [job.status for job in admitted] == [JobStatus.WAITING, JobStatus.WAITING]
    assert all(job.payment_verified for job in admitted)
    assert {job.payment_reference for job in admitted} == {"UTR-1001"}
    assert await engine.queue_positions(users["vendor"].id) == {jobs[0].id: 1, jobs[1].id: 2}

    changed = events.of_type("job.status_changed")
    assert [(e["payload"]["from_status"], e["payload"]["to_status"]) for e in changed] == [
        ("pending", "waiting"), ("pending", "waiting"),
    ]
    positions = events.of_type("queue.position_changed")
    assert [e["payload"]["position"] for e in positions] == [1, 2]


async def test_amount_mismatch_leaves_job_pending(engine, users, make_upload) -> None:
    job = await engine.create_job(users["student"].id, users["vendor"].id, make_upload(page_count=5))
    with pytest.raises(AmountMismatch) as exc_info:
        await engine.verify_payment("UTR-1", 9, job_id=job.id)
    assert exc_info.value.expected == 10

    job, position = await engine.get_job_for_student(job.id, users["student"].id)
    assert job.status == JobStatus.PENDING
    assert position == 0


async def test_duplicate_reference_rejected(engine, users, make_upload) -> None:
    await _paid_job(engine, users, make_upload, "UTR-SAME")
    second = await engine.create_job(users["other_student"].id, users["vendor"].id, make_upload())
    job_id, batch_id, amount = second.id, second.batch_id, second.amount

    with pytest.raises(DuplicateReference) as exc_info:
        await engine.verify_payment("UTR-SAME", amount, job_id=job_id)
    assert exc_info.value.details() == {
        "batch_id": batch_id,
        "job_id": job_id,
        "current_status": "pending",
    }

    second, _ = await engine.get_job_for_student(job_id, users["other_student"].id)
    assert second.status == JobStatus.PENDING
    assert second.payment_verified is False


async def test_reference_is_compared_after_trimming(engine, users, make_upload) -> None:
    await _paid_job(engine, users, make_upload, "UTR-77")
    second = await engine.create_job(users["student"].id, users["vendor"].id, make_upload())
    with pytest.raises(DuplicateReference):
        await engine.verify_payment("  UTR-77 ", second.amount, job_id=second.id)


async def test_paying_twice_is_a_state_conflict(engine, users, make_upload) -> None:
    job = await _paid_job(engine, users, make_upload, "UTR-A")
    with pytest.raises(InvalidStateTransition) as exc_info:
        await engine.verify_payment("UTR-B", job.amount, job_id=job.id)
    assert exc_info.value.current_status == "waiting"


async def test_blank_reference_rejected(engine, users, make_upload) -> None:
    job = await engine.create_job(users["student"].id, users["vendor"].id, make_upload())
    with pytest.raises(JobValidationError):
        await engine.verify_payment("   ", job.amount, job_id=job.id)


async def test_student_cannot_pay_for_someone_elses_job(engine, users, make_upload) -> None:
    job = await engine.create_job(users["student"].id, users["vendor"].id, make_upload())
    with pytest.raises(JobNotFound):
        await engine.verify_payment("UTR-X", job.amount, job_id=job.id, student_id=users["other_student"].id)


# ---------------------------------------------------------------------------
# approve / complete
# ---------------------------------------------------------------------------


async def test_full_lifecycle(engine, users, make_upload, notifier) -> None:
    job = await _paid_job(engine, users, make_upload, "UTR-LIFE")
    vendor_id = users["vendor"].id

    job = await engine.approve(job.id, vendor_id)
    assert job.status == JobStatus.PRINTING
    assert await engine.get_queue_position(job.id) == 1

    job = await engine.complete(job.id, vendor_id)
    assert job.status == JobStatus.DONE
    assert await engine.get_queue_position(job.id) == 0


async def test_complete_sends_pickup_sms(engine, users, make_upload, notifier) -> None:
    job = await _paid_job(engine, users, make_upload, "UTR-SMS")
    await engine.approve(job.id, users["vendor"].id)
    await engine.complete(job.id, users["vendor"].id)
    await drain_background_tasks()

    [(phone, summary)] = notifier.calls
    assert phone == "9876543210"
    assert summary["token_number"] == job.token_number


async def test_notification_failure_does_not_revert_done(engine, users, make_upload, notifier) -> None:
    notifier.fail = True
    job = await _paid_job(engine, users, make_upload, "UTR-FAIL")
    await engine.approve(job.id, users["vendor"].id)
    job = await engine.complete(job.id, users["vendor"].id)
    await drain_background_tasks()

    assert len(notifier.calls) == 1
    job, _ = await engine.get_job_for_student(job.id, users["student"].id)
    assert job.status == JobStatus.DONE


async def test_cannot_approve_unpaid_job(engine, users, make_upload) -> None:
    job = await engine.create_job(users["student"].id, users["vendor"].id, make_upload())
    with pytest.raises(InvalidStateTransition) as exc_info:
        await engine.approve(job.id, users["vendor"].id)
    assert exc_info.value.current_status == "pending"


async def test_cannot_skip_or_repeat_steps(engine, users, make_upload) -> None:
    job = await _paid_job(engine, users, make_upload, "UTR-SKIP")
    vendor_id = users["vendor"].id

    with pytest.raises(InvalidStateTransition):
        await engine.complete(job.id, vendor_id)

    await engine.approve(job.id, vendor_id)
    with pytest.raises(InvalidStateTransition) as exc_info:
        await engine.approve(job.id, vendor_id)
    assert exc_info.value.current_status == "printing"

    await engine.complete(job.id, vendor_id)
    with pytest.raises(InvalidStateTransition) as exc_info:
        await engine.complete(job.id, vendor_id)
    assert exc_info.value.current_status == "done"


@pytest.mark.parametrize("current, target, allowed", [
    (JobStatus.PENDING, JobStatus.WAITING, True),
    (JobStatus.WAITING, JobStatus.PRINTING, True),
    (JobStatus.PRINTING, JobStatus.DONE, True),
    (JobStatus.PENDING, JobStatus.PRINTING, False),
    (JobStatus.WAITING, JobStatus.DONE, False),
    (JobStatus.PRINTING, JobStatus.WAITING, False),
    (JobStatus.DONE, JobStatus.PENDING, False),
    (JobStatus.DONE, JobStatus.DONE, False),
])
def test_only_single_forward_steps_are_legal(current, target, allowed) -> None:
    assert can_transition(current, target) is allowed


async def test_vendor_cannot_touch_another_vendors_job(engine, users, make_upload) -> None:
    job = await _paid_job(engine, users, make_upload, "UTR-OWN")
    with pytest.raises(NotAuthorized):
        await engine.approve(job.id, users["other_vendor"].id)
    with pytest.raises(NotAuthorized):
        await engine.delete_job(job.id, users["other_vendor"].id)
    with pytest.raises(NotAuthorized):
        await engine.download_file(job.id, users["other_vendor"].id)


async def test_unknown_job(engine, users) -> None:
    with pytest.raises(JobNotFound):
        await engine.approve("missing", users["vendor"].id)
    with pytest.raises(JobNotFound):
        await engine.get_queue_position("missing")


# ---------------------------------------------------------------------------
# Queue positions
# ---------------------------------------------------------------------------


async def test_positions_follow_creation_order_not_payment_order(engine, users, make_upload) -> None:
    first = await engine.create_job(users["student"].id, users["vendor"].id, make_upload())
    second = await engine.create_job(users["other_student"].id, users["vendor"].id, make_upload())

    await engine.verify_payment("UTR-2", second.amount, job_id=second.id)
    assert await engine.get_queue_position(second.id) == 1

    await engine.verify_payment("UTR-1", first.amount, job_id=first.id)
    assert await engine.get_queue_position(first.id) == 1
    assert await engine.get_queue_position(second.id) == 2


async def test_positions_close_gaps_when_jobs_finish(engine, users, make_upload) -> None:
    a = await _paid_job(engine, users, make_upload, "UTR-A")
    b = await _paid_job(engine, users, make_upload, "UTR-B", student="other_student")
    c = await _paid_job(engine, users, make_upload, "UTR-C")
    vendor_id = users["vendor"].id

    assert await engine.queue_positions(vendor_id) == {a.id: 1, b.id: 2, c.id: 3}

    await engine.approve(a.id, vendor_id)
    assert await engine.queue_positions(vendor_id) == {a.id: 1, b.id: 2, c.id: 3}

    await engine.complete(a.id, vendor_id)
    assert await engine.queue_positions(vendor_id) == {b.id: 1, c.id: 2}
    assert await engine.get_queue_position(a.id) == 0


async def test_positions_are_per_vendor(engine, users, make_upload) -> None:
    await _paid_job(engine, users, make_upload, "UTR-V1")
    other = await _paid_job(engine, users, make_upload, "UTR-V2", vendor="other_vendor")
    assert await engine.get_queue_position(other.id) == 1


async def test_equal_timestamps_are_ordered_by_token(engine, users, make_upload) -> None:
    a = await _paid_job(engine, users, make_upload, "UTR-T1")
    b = await _paid_job(engine, users, make_upload, "UTR-T2")
    same = datetime(2026, 1, 1, 9, 0, 0)
    await engine.db.execute(
        update(PrintJob).where(PrintJob.id.in_([a.id, b.id])).values(created_at=same)
    )
    await engine.db.commit()

    assert await engine.queue_positions(users["vendor"].id) == {a.id: 1, b.id: 2}
    assert await engine.get_queue_position(b.id) == 2


async def test_reads_have_no_side_effects(engine, users, make_upload) -> None:
    job = await _paid_job(engine, users, make_upload, "UTR-READ")
    first = await engine.get_queue_position(job.id)
    second = await engine.get_queue_position(job.id)
    assert first == second == 1

    live = [(j.id, j.status) for j in await engine.list_live(vendor_id=users["vendor"].id)]
    assert live == [(j.id, j.status) for j in await engine.list_live(vendor_id=users["vendor"].id)]
    assert live == [(job.id, JobStatus.WAITING)]
    history = await engine.list_history(users["student"].id)
    assert history == await engine.list_history(users["student"].id) == []


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def test_latest_job(engine, users, make_upload) -> None:
    assert await engine.get_latest_job(users["student"].id) == (None, 0)
    await engine.create_job(users["student"].id, users["vendor"].id, make_upload())
    newest = await _paid_job(engine, users, make_upload, "UTR-NEW")

    job, position = await engine.get_latest_job(users["student"].id)
    assert job.id == newest.id
    assert position == 1


async def test_students_only_see_their_own_jobs(engine, users, make_upload) -> None:
    job = await engine.create_job(users["student"].id, users["vendor"].id, make_upload())
    with pytest.raises(JobNotFound):
        await engine.get_job_for_student(job.id, users["other_student"].id)
    assert await engine.list_live(student_id=users["other_student"].id) == []


async def test_list_live_needs_a_scope(engine) -> None:
    with pytest.raises(JobValidationError):
        await engine.list_live()


async def test_download_returns_stored_document(engine, users, make_upload) -> None:
    job = await engine.create_job(
        users["student"].id, users["vendor"].id, make_upload(content=b"%PDF-1.4 hello")
    )
    found, blob = await engine.download_file(job.id, users["vendor"].id)
    assert found.id == job.id
    assert blob.content == b"%PDF-1.4 hello"
    assert blob.content_type == "application/pdf"


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


async def test_vendor_delete_removes_job_and_file(engine, users, make_upload, blob_store, broadcaster, events) -> None:
    a = await _paid_job(engine, users, make_upload, "UTR-D1")
    b = await _paid_job(engine, users, make_upload, "UTR-D2")
    events.clear()

    await engine.delete_job(a.id, users["vendor"].id)
    await broadcaster.drain()

    assert a.file_ref not in blob_store
    with pytest.raises(JobNotFound):
        await engine.get_queue_position(a.id)
    assert await engine.get_queue_position(b.id) == 1
    assert events.of_type("job.deleted")[0]["payload"]["job_id"] == a.id
    assert events.of_type("queue.position_changed")[-1]["payload"] == {
        "vendor_id": users["vendor"].id, "job_id": b.id, "token_number": b.token_number, "position": 1,
    }


async def test_clear_history_only_removes_done_jobs(engine, users, make_upload, blob_store) -> None:
    done = await _paid_job(engine, users, make_upload, "UTR-H1")
    await engine.approve(done.id, users["vendor"].id)
    await engine.complete(done.id, users["vendor"].id)
    live = await _paid_job(engine, users, make_upload, "UTR-H2")
    others = await _paid_job(engine, users, make_upload, "UTR-H3", student="other_student")
    await engine.approve(others.id, users["vendor"].id)
    await engine.complete(others.id, users["vendor"].id)

    assert await engine.clear_history(users["student"].id) == 1

    assert done.file_ref not in blob_store
    assert await engine.list_history(users["student"].id) == []
    assert [j.id for j in await engine.list_live(student_id=users["student"].id)] == [live.id]
    assert [j.id for j in await engine.list_history(users["other_student"].id)] == [others.id]


async def test_clear_vendor_history(engine, users, make_upload) -> None:
    job = await _paid_job(engine, users, make_upload, "UTR-VH")
    await engine.approve(job.id, users["vendor"].id)
    await engine.complete(job.id, users["vendor"].id)

    assert await engine.clear_vendor_history(users["other_vendor"].id) == 0
    assert await engine.clear_vendor_history(users["vendor"].id) == 1
    assert await engine.list_vendor_jobs(users["vendor"].id) == []
