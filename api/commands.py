"""
Commands API Router
Endpoints for medication command management
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from api.deps import get_container
from api.schemas.command import (
    CommandCreate,
    CommandUpdate,
    DeleteResponse,
    SeparationConflictResponse,
    StatusChangeRequest,
    StatusChangeResponse,
)
from domain.command import MedicationCommand
from domain.enums import CommandStatus
from services.container import ServiceContainer


router = APIRouter(prefix="/commands", tags=["commands"])


@router.post("/", response_model=MedicationCommand, status_code=status.HTTP_201_CREATED)
async def create_command(
    command_data: CommandCreate,
    container: ServiceContainer = Depends(get_container)
):
    """
    Create a medication command for a patient

    When no explicit times are given they are computed from the patient's
    time bucket preferences for the frequency.
    """
    return await container.commands.create_command(
        patient_id=command_data.patient_id,
        medication=command_data.medication,
        frequency=command_data.frequency,
        start_date=command_data.start_date,
        actor=command_data.actor,
        times=command_data.times,
        time_overrides=command_data.time_overrides,
        end_date=command_data.end_date,
        dosage_amount=command_data.dosage_amount,
        timing_type=command_data.timing_type,
        reminders=command_data.reminders,
        grace_period=command_data.grace_period,
        preferences=command_data.preferences,
    )


@router.get("/patient/{patient_id}", response_model=List[MedicationCommand])
async def list_patient_commands(
    patient_id: str,
    status_filter: Optional[List[CommandStatus]] = Query(None, alias="status"),
    container: ServiceContainer = Depends(get_container)
):
    """List a patient's commands, optionally filtered by status"""
    return await container.commands.list_commands(patient_id, status_filter)


@router.get("/{command_id}", response_model=MedicationCommand)
async def get_command(command_id: str, container: ServiceContainer = Depends(get_container)):
    return await container.commands.get_command(command_id)


@router.put("/{command_id}", response_model=MedicationCommand)
async def update_command(
    command_id: str,
    update_data: CommandUpdate,
    container: ServiceContainer = Depends(get_container)
):
    """Update a command's medication, schedule or settings; bumps its version"""
    return await container.commands.update_command(
        command_id,
        actor=update_data.actor,
        expected_version=update_data.expected_version,
        medication=update_data.medication,
        schedule=update_data.schedule,
        reminders=update_data.reminders,
        grace_period=update_data.grace_period,
        preferences=update_data.preferences,
    )


@router.post("/{command_id}/status", response_model=StatusChangeResponse)
async def change_status(
    command_id: str,
    request: StatusChangeRequest,
    container: ServiceContainer = Depends(get_container)
):
    """Move a command through its lifecycle; records a status_changed event"""
    command, event = await container.commands.change_status(
        command_id,
        request.new_status,
        reason=request.reason,
        actor=request.actor,
        expected_version=request.expected_version,
    )
    return StatusChangeResponse(command=command, event=event)


@router.delete("/{command_id}", response_model=DeleteResponse)
async def delete_command(
    command_id: str,
    actor: str = Query(..., min_length=1),
    hard: bool = Query(False, description="Remove the command and every event instead of discontinuing"),
    reason: str = Query("Deleted by user"),
    container: ServiceContainer = Depends(get_container)
):
    """
    Delete a command

    The default soft delete discontinues the command and keeps its history.
    A hard delete removes the command and all of its events in one transaction
    and can be retried after a failure.
    """
    if hard:
        result = await container.commands.hard_delete(command_id, actor)
        return DeleteResponse(
            command_id=command_id,
            hard_delete=True,
            command_deleted=result.command_deleted,
            events_deleted=result.events_deleted,
        )

    command = await container.commands.soft_delete(command_id, reason, actor)
    return DeleteResponse(
        command_id=command_id,
        hard_delete=False,
        command_deleted=False,
        status=command.status.current,
    )


@router.get("/{command_id}/separation", response_model=List[SeparationConflictResponse])
async def check_separation(command_id: str, container: ServiceContainer = Depends(get_container)):
    """Dose times that violate this command's separation rules"""
    conflicts = await container.commands.check_separation(command_id)
    return [SeparationConflictResponse(**vars(c)) for c in conflicts]
