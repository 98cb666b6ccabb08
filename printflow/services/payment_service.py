"""
Online payments for a batch.

The browser pays through the gateway's checkout widget; the signed result
is checked here and then handed to the queue engine as an ordinary payment
reference, so gateway payments go through the same admission guard as
manually submitted references.

Every order created here is recorded with its batch and amount. A checkout
callback is only accepted for the batch its order was created for, and the
order's amount (not the batch total) is what the admission guard compares
against the amount due.
"""
from printflow.errors import PaymentVerificationFailed
from printflow.logging_config import get_logger
from printflow.models.job import PrintJob
from printflow.routes.metrics import track_payment_rejection
from printflow.services.payment_gateway import RazorpayGateway
from printflow.services.queue_engine import QueueEngine


class PaymentService:
    """Bridges the payment gateway and the queue engine."""

    def __init__(self, engine: QueueEngine, gateway: RazorpayGateway):
        self.engine = engine
        self.gateway = gateway

    async def create_intent(self, student_id: str, batch_id: str) -> dict:
        """Create a gateway order for the unpaid total of a batch."""
        jobs = await self.engine.get_batch(batch_id, student_id)
        amount = sum(job.amount for job in jobs)
        intent = await self.gateway.create_intent(
            amount,
            receipt=f"batch_{batch_id}"[:40],
            notes={
                "batch_id": batch_id,
                "student_id": student_id,
                "tokens": ",".join(str(job.token_number) for job in jobs),
            },
        )
        # The gateway reports minor units
        await self.engine.repo.record_intent(
            intent["order_id"], batch_id, student_id, intent["amount"] // 100
        )
        await self.engine.db.commit()

        intent["batch_id"] = batch_id
        return intent

    async def confirm(
        self,
        student_id: str,
        batch_id: str,
        order_id: str,
        payment_id: str,
        signature: str,
    ) -> list[PrintJob]:
        """
        Verify the checkout signature and the order's ownership, then admit
        the batch with the gateway's payment id as its reference.

        Raises:
            PaymentVerificationFailed: bad signature, unknown order, or an
                order created for another batch or student
            AmountMismatch: the order does not cover the batch total
        """
        log = get_logger(batch_id=batch_id, order_id=order_id)
        if not self.gateway.verify_callback(order_id, payment_id, signature):
            track_payment_rejection("bad_signature")
            log.warning("payment_signature_invalid")
            raise PaymentVerificationFailed()

        intent = await self.engine.repo.get_intent(order_id)
        if intent is None or intent.batch_id != batch_id or intent.student_id != student_id:
            track_payment_rejection("order_mismatch")
            log.warning("payment_order_mismatch", order_batch_id=intent.batch_id if intent else None)
            raise PaymentVerificationFailed("Payment order does not belong to this batch")

        return await self.engine.verify_payment(
            payment_id,
            intent.amount,
            batch_id=batch_id,
            student_id=student_id,
        )
