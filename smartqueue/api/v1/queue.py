from typing import Optional
import asyncio
import logging

from fastapi import (
    APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
)
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import (
    PatientContext, get_patient_context, authenticate_websocket, reload_patient_context
)
from ...services.notification_service import NotificationService
from ...services.queue_service import QueueService
from ...services.queue_tracker import QueueTracker
from ...services.realtime import QueueStatusChannel, get_queue_status_source
from ...schemas.queue import QueuePosition, QueueStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["Queue"])

@router.get("/me/position", response_model=QueuePosition)
async def get_my_position(
    context: PatientContext = Depends(get_patient_context),
    db: Session = Depends(get_db)
):
    """Queue position for the active appointment."""
    if context.active_appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active appointment"
        )
    return QueueService(db).position_for(context.active_appointment)

@router.get("/{doctor_id}", response_model=QueueStatusUpdate)
async def get_queue_status(doctor_id: int, db: Session = Depends(get_db)):
    """Currently-serving counter of a doctor."""
    update = QueueService(db).get_update(doctor_id)
    if update is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Queue is not open for this doctor"
        )
    return update

@router.websocket("/ws")
async def stream_queue_position(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    source = Depends(get_queue_status_source),
):
    """Live queue position for the patient's active appointment.

    Sends the position on connect and again on every queue status change of
    the appointment's doctor. The stream ends when the client disconnects, or
    with a closing message once the appointment is no longer the active one
    or the patient has signed out.
    """
    context = authenticate_websocket(token, db)
    if context is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    appointment = context.active_appointment
    if appointment is None:
        await websocket.send_json({"appointment_id": None, "detail": "No active appointment"})
        await websocket.close()
        return

    appointment_id = appointment.id
    tracker = QueueTracker(appointment)
    queue_service = QueueService(db)
    notifications = NotificationService(db)

    async def push(position: QueuePosition):
        if position.near_turn_alert:
            notifications.record_near_turn(appointment, position)
        await websocket.send_json(position.model_dump(mode="json"))

    ended = None
    async with QueueStatusChannel(source, appointment.doctor_id) as channel:
        await push(queue_service.position_for(appointment, tracker))

        receiver = asyncio.ensure_future(websocket.receive_text())
        getter = asyncio.ensure_future(channel.get())
        try:
            while True:
                await asyncio.wait({receiver, getter}, return_when=asyncio.FIRST_COMPLETED)

                if receiver.done():
                    try:
                        receiver.result()
                    except WebSocketDisconnect:
                        break
                    # Client messages carry nothing; keep listening for disconnect
                    receiver = asyncio.ensure_future(websocket.receive_text())

                if getter.done():
                    update = getter.result()
                    ended = _stream_end_reason(reload_patient_context(context, db), appointment_id)
                    if ended:
                        break
                    await push(tracker.update(update))
                    getter = asyncio.ensure_future(channel.get())
        finally:
            receiver.cancel()
            getter.cancel()
            logger.info(f"Queue stream closed for appointment {appointment_id}")

    # Sent after unsubscribing so no further update can follow it
    if ended:
        await websocket.send_json({"appointment_id": appointment_id, "detail": ended})
        await websocket.close()

def _stream_end_reason(context: Optional[PatientContext], appointment_id: int) -> Optional[str]:
    if context is None:
        return "Session has ended, please sign in again"
    active = context.active_appointment
    if active is None or active.id != appointment_id:
        return "Appointment is no longer active"
    return None
