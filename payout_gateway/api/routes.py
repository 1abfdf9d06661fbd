"""
API routes for payment initiation.
"""
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from payout_gateway.core.payment_service import PaymentError
from payout_gateway.core.record_store import StoreUnavailableError
from payout_gateway.integrations.wise_client import WiseAPIError

from .dependencies import ServiceContainer, get_container, require_idempotency_key
from .schemas import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    ErrorResponse,
    EventMirrorResponse,
    HealthCheckResponse,
    PaymentResponse,
    StoredEventResponse,
)

logger = structlog.get_logger(__name__)

payment_router = APIRouter(prefix="/api/payments", tags=["payments"])
event_router = APIRouter(prefix="/api/events", tags=["events"])
monitoring_router = APIRouter(tags=["monitoring"])

PAYMENT_FAILED = "Payment processing failed"


@payment_router.post(
    "",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=CreatePaymentResponse,
    responses={
        200: {"model": CreatePaymentResponse, "description": "Replay of an earlier submission"},
        400: {"model": ErrorResponse, "description": "Missing idempotency key"},
        500: {"model": ErrorResponse, "description": "Payment processing failed"},
    },
    summary="Create a payment",
    description="Initiate a payout. Requires an idempotency-key header; retries replay the first response.",
)
async def create_payment(
    request: CreatePaymentRequest,
    idempotency_key: str = Depends(require_idempotency_key),
    container: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """
    Create a new payment.

    This endpoint is idempotent - a retried key returns the recorded response
    with status 200 and does not contact Wise again.
    """

    async def initiate(key: str) -> Dict[str, Any]:
        return await container.payment_service.create_payment(
            amount=request.amount,
            currency=request.currency,
            customer_id=request.customer_id,
            idempotency_key=key,
        )

    try:
        result = await container.idempotency_gate.execute(idempotency_key, initiate)

    except StoreUnavailableError as e:
        logger.error("api_create_payment_store_error", idempotency_key=idempotency_key, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=PAYMENT_FAILED)

    except (PaymentError, WiseAPIError) as e:
        logger.error("api_create_payment_error", idempotency_key=idempotency_key, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=PAYMENT_FAILED)

    except Exception as e:
        logger.exception("api_create_payment_unexpected_error", error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=PAYMENT_FAILED)

    status_code = status.HTTP_200_OK if result.replayed else status.HTTP_202_ACCEPTED
    return JSONResponse(status_code=status_code, content=result.response)


@payment_router.get(
    "",
    response_model=List[PaymentResponse],
    summary="List payments",
)
async def list_payments(
    container: ServiceContainer = Depends(get_container),
) -> List[PaymentResponse]:
    try:
        payments = await container.payment_service.list_payments()
    except StoreUnavailableError as e:
        logger.error("api_list_payments_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch payments"
        )
    return [PaymentResponse.model_validate(payment) for payment in payments]


@payment_router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get a payment",
)
async def get_payment(
    payment_id: str,
    container: ServiceContainer = Depends(get_container),
) -> PaymentResponse:
    try:
        payment = await container.payment_service.get_payment(payment_id)
    except StoreUnavailableError as e:
        logger.error("api_get_payment_error", payment_id=payment_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch payment"
        )

    if payment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return PaymentResponse.model_validate(payment)


@event_router.get(
    "",
    response_model=List[StoredEventResponse],
    summary="List stored events",
    description="Events persisted while the broker was unavailable, with their redelivery state.",
)
async def list_stored_events(
    container: ServiceContainer = Depends(get_container),
) -> List[StoredEventResponse]:
    try:
        events = await container.record_store.list_events()
    except StoreUnavailableError as e:
        logger.error("api_list_events_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch events"
        )
    return [StoredEventResponse.model_validate(event) for event in events]


@event_router.get(
    "/mirror",
    response_model=EventMirrorResponse,
    summary="In-memory event mirror",
)
async def event_mirror(
    container: ServiceContainer = Depends(get_container),
) -> EventMirrorResponse:
    delivery = container.event_delivery
    return EventMirrorResponse(
        connected=delivery.is_connected,
        events=delivery.get_stored_events(),
    )


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
)
async def health(
    response: Response,
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """Database reachability decides health; a missing broker only degrades it."""
    result = await container.health_check.check_all()
    if result["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return result


@monitoring_router.get("/metrics", include_in_schema=False)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
