# Services package
from .payment_gateway import StripeGateway, map_stripe_error
from .show_service import resolve_show_name, UNKNOWN_SHOW
from .booking_intent_service import BookingIntentManager, CheckoutResult, normalize_dates_needed
from .reconciliation_service import (
    ReconciliationService,
    PaymentConfirmation,
    PromotionResult,
    ConfirmResult,
    advance_booking_status
)
from .final_fee_service import FinalFeeCharger, FinalFeeBreakdown, FinalChargeResult, compute_final_fee
from .webhook_receiver import StripeWebhookReceiver, WebhookReceiveResult

__all__ = [
    "StripeGateway", "map_stripe_error",
    "resolve_show_name", "UNKNOWN_SHOW",
    "BookingIntentManager", "CheckoutResult", "normalize_dates_needed",
    "ReconciliationService", "PaymentConfirmation", "PromotionResult",
    "ConfirmResult", "advance_booking_status",
    "FinalFeeCharger", "FinalFeeBreakdown", "FinalChargeResult", "compute_final_fee",
    "StripeWebhookReceiver", "WebhookReceiveResult"
]
