"""
Online payment routes (Razorpay checkout).
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from printflow.dependencies.auth import require_student, TokenPayload
from printflow.dependencies.services import get_payment_service
from printflow.routes.schemas import BatchResponse, jobs_with_positions
from printflow.services.payment_service import PaymentService


router = APIRouter(prefix="/api/payments", tags=["payments"])


class CreateIntentRequest(BaseModel):
    batch_id: str


class ConfirmPaymentRequest(BaseModel):
    """Fields returned by the checkout widget."""
    batch_id: str
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


@router.post("/intents")
async def create_intent(
    request: CreateIntentRequest,
    current_user: TokenPayload = Depends(require_student),
    payments: PaymentService = Depends(get_payment_service),
):
    """Create a gateway order for a batch; the client opens checkout with it."""
    return await payments.create_intent(current_user.sub, request.batch_id)


@router.post("/confirm", response_model=BatchResponse)
async def confirm_payment(
    request: ConfirmPaymentRequest,
    current_user: TokenPayload = Depends(require_student),
    payments: PaymentService = Depends(get_payment_service),
):
    jobs = await payments.confirm(
        current_user.sub,
        request.batch_id,
        request.razorpay_order_id,
        request.razorpay_payment_id,
        request.razorpay_signature,
    )
    return BatchResponse(
        batch_id=request.batch_id,
        total_amount=sum(job.amount for job in jobs),
        jobs=await jobs_with_positions(payments.engine, jobs),
        message="Payment verified",
    )
