"""
Stripe payment endpoints: deposit checkout, success-page confirmation,
webhook receiver and the final-fee charge.
"""

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..database import get_db
from ..schemas.payment import (
    ChargeFinalRequest,
    ChargeFinalResponse,
    ConfirmSessionResponse,
    CreateBookingSessionRequest,
    CreateBookingSessionResponse,
    FinalFeeComputed,
)
from ..services.booking_intent_service import BookingIntentManager
from ..services.final_fee_service import FinalFeeCharger
from ..services.payment_gateway import StripeGateway
from ..services.reconciliation_service import ReconciliationService
from ..services.webhook_receiver import StripeWebhookReceiver
from ..utils.audit_logger import get_request_id, log_payment_action
from ..utils.dependencies import (
    CurrentUser,
    ROLE_CLIENT,
    get_final_charge_actor,
    get_payment_gateway,
    require_roles,
)
from ..utils.rate_limiter import get_rate_limit, limiter

router = APIRouter(prefix="/api/stripe", tags=["Payments"])


@router.post("/create-booking-session", response_model=CreateBookingSessionResponse)
@limiter.limit(get_rate_limit("booking_session"))
def create_booking_session(
    request: Request,
    data: CreateBookingSessionRequest,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    current_user: CurrentUser = Depends(require_roles(ROLE_CLIENT))
):
    """
    Start a booking: store the request as an intent and return the hosted
    checkout URL for the deposit. The client id always comes from the session.
    """
    manager = BookingIntentManager(db, gateway)
    result = manager.create_intent(
        client_id=current_user.id,
        show_id=data.show_id,
        dates_needed=[d.model_dump() for d in data.dates_needed],
        notes=data.notes,
        total_staff_needed=data.total_staff_needed,
        primary_contact_id=data.primary_contact_id,
        primary_location_id=data.primary_location_id,
        origin=request.headers.get("origin"),
    )
    return CreateBookingSessionResponse(url=result.url, intent_id=result.intent_id)


@router.get("/confirm-session", response_model=ConfirmSessionResponse)
def confirm_session(
    response: Response,
    session_id: str = Query(..., min_length=1, max_length=255),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway)
):
    """
    Called by the success page after checkout. Returns 202 when the payment
    is confirmed but the booking could not be written yet.
    """
    result = ReconciliationService(db, gateway).confirm_session(session_id)
    if result.pending:
        response.status_code = status.HTTP_202_ACCEPTED
    return ConfirmSessionResponse(
        success=result.success,
        booking_id=result.booking_id,
        idempotent=result.idempotent,
        pending=result.pending,
        message=result.message,
    )


@router.post("/webhook")
@limiter.limit(get_rate_limit("webhook"))
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway)
):
    """
    Stripe event receiver. Needs the raw body for signature verification.
    Processing does blocking DB and Stripe calls, so it runs in the threadpool.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    receiver = StripeWebhookReceiver(db, gateway)
    result = await run_in_threadpool(receiver.receive, payload, signature)
    return result.to_dict()


@router.post("/charge-final", response_model=ChargeFinalResponse)
@limiter.limit(get_rate_limit("charge_final"))
def charge_final(
    request: Request,
    data: ChargeFinalRequest,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    actor: CurrentUser = Depends(get_final_charge_actor)
):
    """
    Collect the final staffing fee (staff / admin / internal key).

    dryRun previews the computation. Otherwise the saved card is charged,
    or a checkout URL is returned when the cardholder has to act.
    """
    charger = FinalFeeCharger(db, gateway)
    result = charger.charge_final(
        data.booking_id,
        override_fee_cents=data.override_fee_cents,
        override_rate_cents=data.override_rate_cents,
        dry_run=data.dry_run,
        actor_id=actor.id,
        origin=request.headers.get("origin"),
    )

    breakdown = result.breakdown
    if not result.dry_run:
        outcome = "charged" if result.success else "requires_action"
        log_payment_action(
            "CHARGE_FINAL", data.booking_id, actor.id,
            amount_cents=breakdown.amount_cents, outcome=outcome,
            request_id=get_request_id(request)
        )

    return ChargeFinalResponse(
        booking_id=result.booking_id,
        computed=FinalFeeComputed(**breakdown.computed()),
        amount_to_charge_cents=breakdown.amount_cents,
        dry_run=result.dry_run,
        success=result.success,
        payment_intent_id=result.payment_intent_id,
        amount_cents=breakdown.amount_cents if result.success else None,
        requires_action=result.requires_action,
        url=result.url,
    )
