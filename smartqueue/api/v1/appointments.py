from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import PatientContext, get_patient_context
from ...services.appointment_service import AppointmentService
from ...services.queue_service import QueueService
from ...schemas.appointment import (
    AppointmentCreate, AppointmentResponse, ActiveAppointmentResponse
)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    booking: AppointmentCreate,
    context: PatientContext = Depends(get_patient_context),
    db: Session = Depends(get_db)
):
    """Book an appointment and receive a queue token."""
    return AppointmentService(db).book(context.user, booking)

@router.get("", response_model=List[AppointmentResponse])
async def list_my_appointments(
    context: PatientContext = Depends(get_patient_context),
    db: Session = Depends(get_db)
):
    return AppointmentService(db).list_for_patient(context.user)

@router.get("/active", response_model=ActiveAppointmentResponse)
async def get_active_appointment(
    context: PatientContext = Depends(get_patient_context),
    db: Session = Depends(get_db)
):
    """Active appointment with its current queue position."""
    if context.active_appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active appointment"
        )
    return ActiveAppointmentResponse(
        appointment=AppointmentResponse.model_validate(context.active_appointment),
        position=QueueService(db).position_for(context.active_appointment),
    )

@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    context: PatientContext = Depends(get_patient_context),
    db: Session = Depends(get_db)
):
    return AppointmentService(db).cancel(context.user, appointment_id)
