"""Appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentActor, LifecycleManager, ScheduleService
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCheckIn,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatus,
    AvailabilityResponse,
    DayStatistics,
    HospitalScheduleFilters,
)

router = APIRouter()


@router.get(
    "/",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List my appointments",
)
async def list_appointments(
    actor: CurrentActor,
    service: ScheduleService,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    upcoming: bool = Query(False),
) -> list[AppointmentResponse]:
    """
    List the authenticated patient's appointments, earliest first.

    Args:
        actor: Authenticated patient
        service: Schedule query service
        status_filter: Filter by status
        upcoming: Only future BOOKED appointments

    Returns:
        Appointments sorted by scheduled time
    """
    filters = AppointmentFilters(status=status_filter, upcoming_only=upcoming)
    return await service.list_mine(actor, filters)


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List bookable slots",
)
async def list_availability(
    actor: CurrentActor,
    service: ScheduleService,
    hospital_id: UUID = Query(...),
    department_id: UUID = Query(...),
    day: date = Query(..., alias="date"),
    doctor_id: UUID | None = Query(None),
) -> AvailabilityResponse:
    """
    Slot grid for a department (and optionally a doctor) on one day.

    Args:
        actor: Authenticated caller
        service: Schedule query service
        hospital_id: Hospital ID
        department_id: Department ID
        day: Day to list, ``YYYY-MM-DD``
        doctor_id: Doctor ID, omitted for the unassigned lane

    Returns:
        30-minute slots with availability flags
    """
    return await service.list_available_slots(hospital_id, department_id, day, doctor_id)


@router.get(
    "/hospital",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Hospital schedule for a day",
)
async def list_hospital_schedule(
    actor: CurrentActor,
    service: ScheduleService,
    day: date = Query(..., alias="date"),
    department_id: UUID | None = Query(None),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
) -> list[AppointmentResponse]:
    """Appointments at the staff member's hospital on one day."""
    filters = HospitalScheduleFilters(day=day, department_id=department_id, status=status_filter)
    return await service.list_for_hospital(actor, filters)


@router.get(
    "/hospital/stats",
    response_model=DayStatistics,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Check-in statistics for a day",
)
async def hospital_day_statistics(
    actor: CurrentActor,
    service: ScheduleService,
    day: date = Query(..., alias="date"),
) -> DayStatistics:
    """Per-status counts at the staff member's hospital."""
    return await service.day_statistics(actor, day)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    service: ScheduleService,
) -> AppointmentResponse:
    """
    Get a specific appointment by ID.

    Raises:
        NotFoundException: If appointment not found or owned by someone else
    """
    return await service.get_by_id(appointment_id, actor)


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: CurrentActor,
    manager: LifecycleManager,
) -> AppointmentResponse:
    """
    Book an appointment.

    Args:
        data: Appointment creation data
        actor: Authenticated patient or staff member
        manager: Lifecycle manager

    Returns:
        Created appointment

    Raises:
        SlotConflictException: If the slot is already taken
    """
    return await manager.create(actor, data)


@router.patch(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    manager: LifecycleManager,
    data: AppointmentCancel | None = None,
) -> AppointmentResponse:
    """Cancel a booked or confirmed appointment."""
    reason = data.reason if data else None
    return await manager.cancel(appointment_id, actor, reason)


@router.patch(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    actor: CurrentActor,
    manager: LifecycleManager,
) -> AppointmentResponse:
    """Move a booked or confirmed appointment to a new time."""
    return await manager.reschedule(appointment_id, actor, data.new_date)


@router.patch(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    manager: LifecycleManager,
) -> AppointmentResponse:
    """Confirm a booked appointment (staff)."""
    return await manager.confirm(appointment_id, actor)


@router.post(
    "/{appointment_id}/check-in",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Check patient in",
)
async def check_in_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    manager: LifecycleManager,
    data: AppointmentCheckIn | None = None,
) -> AppointmentResponse:
    """Check the patient in for their appointment (staff)."""
    notes = data.notes if data else None
    return await manager.check_in(appointment_id, actor, notes)


@router.patch(
    "/{appointment_id}/start",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Start consultation",
)
async def start_consultation(
    appointment_id: UUID,
    actor: CurrentActor,
    manager: LifecycleManager,
) -> AppointmentResponse:
    """Move a checked-in appointment into consultation (staff)."""
    return await manager.begin_consultation(appointment_id, actor)


@router.patch(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Complete consultation",
)
async def complete_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    manager: LifecycleManager,
) -> AppointmentResponse:
    """Finish the consultation (staff)."""
    return await manager.complete(appointment_id, actor)


@router.patch(
    "/{appointment_id}/no-show",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark no-show",
)
async def mark_no_show(
    appointment_id: UUID,
    actor: CurrentActor,
    manager: LifecycleManager,
) -> AppointmentResponse:
    """Record that the patient missed the appointment (staff)."""
    return await manager.mark_no_show(appointment_id, actor)
