"""
Reservation webhook routes called by the scheduling bot.

Every POST route requires the X-Webhook-Token header. Handlers are thin:
they translate the payload into a lifecycle call and the OperationResult
into an HTTP response.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from agenda.models import OperationResult
from agenda.services.reservation_service import ReservationLifecycleManager
from api.dependencies import get_lifecycle_manager
from api.middleware.webhook_auth import verify_webhook_token
from api.models.reservation_webhook import (
    AvailabilityPayload,
    CreateEventPayload,
    DeleteEventPayload,
    ReschedulePayload,
    ReservationIdPayload,
    UpdateEventPayload,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_webhook_token)])

ERROR_STATUS = {
    "VALIDATION_ERROR": 400,
    "AUTH_ERROR": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "SLOT_BUSY": 409,
    "DUPLICATE_RESERVATION": 409,
    "UPSTREAM_ERROR": 502,
    "UPSTREAM_TIMEOUT": 504,
    "INTERNAL_ERROR": 500,
}


def error_response(error_code: str | None, message: str | None) -> JSONResponse:
    """Error body shared by every route."""
    return JSONResponse(
        status_code=ERROR_STATUS.get(error_code or "INTERNAL_ERROR", 500),
        content={"status": "error", "error_code": error_code, "error": message},
    )


def to_response(result: OperationResult, status: str, **extra: Any) -> JSONResponse:
    """Success -> 200 {"status": <status>, **data}; failure -> mapped error status."""
    if not result.success:
        return error_response(result.error_code, result.error_message)
    return JSONResponse(status_code=200, content={"status": status, **result.data, **extra})


@router.post("/create-event")
async def create_event(
    payload: CreateEventPayload,
    manager: ReservationLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    """
    Book a new appointment.

    Returns:
        200 {"status": "created", reservation_id, event_id, date, time,
        price, location, meeting_link}
        400 invalid fields, 409 slot taken, 502/504 calendar failure
    """
    result = await manager.create(payload.to_request())
    return to_response(result, "created")


@router.post("/reschedule-by-reservation")
async def reschedule_by_reservation(
    payload: ReschedulePayload,
    manager: ReservationLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    """Move a reservation to a new date/time (and optionally a new channel)."""
    result = await manager.reschedule(
        payload.reservation_id, payload.date, payload.time, payload.channel
    )
    return to_response(result, "rescheduled")


@router.post("/cancel")
async def cancel(
    payload: ReservationIdPayload,
    manager: ReservationLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    result = await manager.cancel(payload.reservation_id)
    return to_response(result, "cancelled")


@router.post("/check-by-reservation")
async def check_by_reservation(
    payload: ReservationIdPayload,
    manager: ReservationLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    result = await manager.check_by_reservation(payload.reservation_id)
    return to_response(result, "found")


@router.post("/availability")
async def availability(
    payload: AvailabilityPayload,
    manager: ReservationLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    """Free HH:00 start times of one day."""
    result = await manager.availability(payload.date)
    return to_response(result, "ok")


@router.post("/update-event")
async def update_event(
    payload: UpdateEventPayload,
    manager: ReservationLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    """Partial update of an event addressed by its calendar event id."""
    result = await manager.update_event(payload.event_id, payload.to_update())
    return to_response(result, "updated")


@router.post("/delete-event")
async def delete_event(
    payload: DeleteEventPayload,
    manager: ReservationLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    result = await manager.delete_event(payload.event_id)
    return to_response(result, "deleted")
