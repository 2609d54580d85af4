"""API router exposing the device mailbox, commands, schedules and logs."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import schemas
from .device import DeviceStatus
from .logs import DEFAULT_PAGE_SIZE, LogEntry
from .schedules import ScheduleRecord
from .service import ShutterController, get_controller
from .triggers import Trigger, parse_days
from .utils import logger

MAX_PAGE_SIZE = 500

router = APIRouter(prefix="/api")

Controller = Annotated[ShutterController, Depends(get_controller)]


def _storage_unavailable(exc: SQLAlchemyError) -> HTTPException:
    logger.error("Storage operation failed: {}", exc)
    return HTTPException(
        status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage is unavailable."
    )


def _lenient_days(raw: str) -> list[int]:
    try:
        return list(parse_days(raw))
    except ValueError:
        return []


def _schedule_to_schema(record: ScheduleRecord) -> schemas.ScheduleDefinition:
    return schemas.ScheduleDefinition(
        id=record.id,
        name=record.name,
        time=record.time,
        days=_lenient_days(record.days),
        command=record.command,
        enabled=record.enabled,
        created_at=record.created_at,
    )


def _trigger_to_schema(trigger: Trigger) -> schemas.TriggerInfo:
    return schemas.TriggerInfo(
        schedule_id=trigger.schedule_id,
        name=trigger.name,
        command=trigger.command,
        hour=trigger.hour,
        minute=trigger.minute,
        days=list(trigger.days),
    )


def _log_to_schema(entry: LogEntry) -> schemas.LogEntryOut:
    return schemas.LogEntryOut(
        id=entry.id,
        status=entry.status,
        message=entry.message,
        timestamp=entry.timestamp,
    )


def _status_to_schema(snapshot: DeviceStatus) -> schemas.DeviceStatusSnapshot:
    return schemas.DeviceStatusSnapshot(
        status=snapshot.status,
        last_update=snapshot.last_update,
        ip=snapshot.source_ip,
    )


# Device mailbox ---------------------------------------------------------------


@router.get("/status", response_model=schemas.MailboxResponse, tags=["device"])
def poll_command(controller: Controller) -> schemas.MailboxResponse:
    """Return the pending command and clear it."""
    return schemas.MailboxResponse(command=controller.poll() or "")


@router.post(
    "/command",
    response_model=schemas.CommandResponse,
    responses={status.HTTP_400_BAD_REQUEST: {"model": schemas.CommandResponse}},
    tags=["device"],
)
def send_command(
    payload: schemas.CommandRequest, controller: Controller
) -> schemas.CommandResponse | JSONResponse:
    result = controller.dispatch(payload.action)
    body = schemas.CommandResponse(
        accepted=result.accepted, command=result.command, reason=result.reason
    )
    if not result.accepted:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=body.model_dump(),
        )
    return body


@router.post("/log", response_model=schemas.AckResponse, tags=["device"])
def report_device_log(
    payload: schemas.DeviceReport, controller: Controller
) -> schemas.AckResponse:
    controller.report(payload.status, payload.message or "", payload.source_ip)
    return schemas.AckResponse()


@router.get(
    "/device-status", response_model=schemas.DeviceStatusSnapshot, tags=["device"]
)
def get_device_status(controller: Controller) -> schemas.DeviceStatusSnapshot:
    return _status_to_schema(controller.device_status())


@router.post("/device-status", response_model=schemas.AckResponse, tags=["device"])
def report_heartbeat(
    payload: schemas.DeviceHeartbeat, controller: Controller
) -> schemas.AckResponse:
    controller.heartbeat(payload.status, payload.ip)
    return schemas.AckResponse()


# Schedules ------------------------------------------------------------------


@router.get(
    "/schedules",
    response_model=list[schemas.ScheduleDefinition],
    tags=["schedules"],
)
def list_schedules(controller: Controller) -> list[schemas.ScheduleDefinition]:
    try:
        records = controller.schedules.list()
    except SQLAlchemyError as exc:
        raise _storage_unavailable(exc) from exc
    return [_schedule_to_schema(record) for record in records]


@router.get(
    "/schedules/triggers",
    response_model=schemas.TriggerListResponse,
    tags=["schedules"],
)
def list_triggers(controller: Controller) -> schemas.TriggerListResponse:
    return schemas.TriggerListResponse(
        triggers=[_trigger_to_schema(trigger) for trigger in controller.reconciler.triggers()]
    )


@router.post(
    "/schedules/reconcile",
    response_model=schemas.ReconcileResponse,
    tags=["schedules"],
)
def force_reconcile(controller: Controller) -> schemas.ReconcileResponse:
    return schemas.ReconcileResponse(installed=controller.reconciler.reconcile())


@router.post(
    "/schedules",
    response_model=schemas.ScheduleDefinition,
    status_code=status.HTTP_201_CREATED,
    tags=["schedules"],
)
def create_schedule(
    payload: schemas.ScheduleCreateRequest, controller: Controller
) -> schemas.ScheduleDefinition:
    try:
        record = controller.schedules.create(payload)
    except SQLAlchemyError as exc:
        raise _storage_unavailable(exc) from exc
    logger.info("Schedule created.", schedule_id=record.id, name=record.name)
    controller.reconciler.reconcile()
    return _schedule_to_schema(record)


@router.get(
    "/schedules/{schedule_id}",
    response_model=schemas.ScheduleDefinition,
    tags=["schedules"],
)
def get_schedule(schedule_id: int, controller: Controller) -> schemas.ScheduleDefinition:
    try:
        record = controller.schedules.get(schedule_id)
    except SQLAlchemyError as exc:
        raise _storage_unavailable(exc) from exc
    if record is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Schedule not found.")
    return _schedule_to_schema(record)


@router.put(
    "/schedules/{schedule_id}",
    response_model=schemas.ScheduleDefinition,
    tags=["schedules"],
)
def update_schedule(
    schedule_id: int,
    payload: schemas.ScheduleUpdateRequest,
    controller: Controller,
) -> schemas.ScheduleDefinition:
    if not payload.model_dump(exclude_unset=True):
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, detail="No fields provided for update."
        )
    try:
        record = controller.schedules.update(schedule_id, payload)
    except SQLAlchemyError as exc:
        raise _storage_unavailable(exc) from exc
    if record is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Schedule not found.")
    logger.info(
        "Schedule updated.",
        schedule_id=schedule_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    controller.reconciler.reconcile()
    return _schedule_to_schema(record)


@router.delete(
    "/schedules/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["schedules"],
)
def delete_schedule(schedule_id: int, controller: Controller) -> Response:
    try:
        deleted = controller.schedules.delete(schedule_id)
    except SQLAlchemyError as exc:
        raise _storage_unavailable(exc) from exc
    if not deleted:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Schedule not found.")
    logger.info("Schedule deleted.", schedule_id=schedule_id)
    controller.reconciler.reconcile()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Logs -------------------------------------------------------------------------


@router.get("/logs", response_model=schemas.LogListResponse, tags=["logs"])
def list_logs(
    controller: Controller,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
) -> schemas.LogListResponse:
    try:
        entries = controller.logs.list_recent(limit)
    except SQLAlchemyError as exc:
        raise _storage_unavailable(exc) from exc
    return schemas.LogListResponse(logs=[_log_to_schema(entry) for entry in entries])
