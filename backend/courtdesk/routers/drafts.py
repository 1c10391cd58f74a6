import logging
from typing import Any, List

import httpx
from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import (
    DraftRegistry,
    build_workflow,
    get_current_user_id,
    get_http_client,
    get_registry,
    get_session,
    get_workflow,
)
from ..domain.errors import (
    ConcurrentSubmissionError,
    InvalidFieldError,
    ReservationConflictError,
    TimeFormatError,
    UnknownSubmissionError,
    ValidationError,
)
from ..domain.validation import first_error
from ..infrastructure.repositories import SqlAlchemyPreferenceRepository
from ..schemas import (
    CounterpartyRead,
    CounterpartySelect,
    DraftRead,
    DraftUpdate,
    SlotRead,
    SubmissionRead,
    ValidationRead,
)
from ..usecases.workflow import BookingWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drafts", tags=["drafts"])

# DraftUpdate attribute -> draft field, where they differ
_FIELD_NAMES = {"booking_date": "date"}


def _read(draft_id: str, workflow: BookingWorkflow) -> DraftRead:
    return DraftRead.from_state(
        draft_id=draft_id,
        draft=workflow.draft,
        slots=workflow.state.slots,
        availability_error=workflow.state.availability_error,
        errors=workflow.errors,
    )


@router.post("", response_model=DraftRead, status_code=status.HTTP_201_CREATED)
async def create_draft(
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
    registry: DraftRegistry = Depends(get_registry),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> DraftRead:
    workflow = build_workflow(client, user_id)
    await workflow.load_preferences(SqlAlchemyPreferenceRepository(session))
    draft_id = registry.add(user_id, workflow)
    return _read(draft_id, workflow)


@router.get("/{draft_id}", response_model=DraftRead)
async def get_draft(
    draft_id: str = Path(...),
    workflow: BookingWorkflow = Depends(get_workflow),
) -> DraftRead:
    return _read(draft_id, workflow)


@router.patch("/{draft_id}", response_model=DraftRead)
async def update_draft(
    payload: DraftUpdate,
    draft_id: str = Path(...),
    workflow: BookingWorkflow = Depends(get_workflow),
) -> DraftRead:
    changes: dict[str, Any] = {
        _FIELD_NAMES.get(name, name): value
        for name, value in payload.model_dump(exclude_unset=True).items()
        if name != "selected_slot"
    }
    try:
        await workflow.apply(changes)
        # a slot is chosen against the availability the writes above produced
        if "selected_slot" in payload.model_fields_set:
            selection = payload.selected_slot
            await workflow.select_slot(selection.model_dump(exclude_none=True) if selection else None)
    except InvalidFieldError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return _read(draft_id, workflow)


@router.post("/{draft_id}/counterparty", response_model=DraftRead)
async def select_counterparty(
    payload: CounterpartySelect,
    draft_id: str = Path(...),
    workflow: BookingWorkflow = Depends(get_workflow),
) -> DraftRead:
    person = CounterpartyRead(id=payload.id, full_name=payload.full_name, email=payload.email, phone=payload.phone)
    await workflow.select_counterparty(person)
    return _read(draft_id, workflow)


@router.post("/{draft_id}/slots/refresh", response_model=List[SlotRead])
async def refresh_slots(
    draft_id: str = Path(...),
    workflow: BookingWorkflow = Depends(get_workflow),
) -> list[SlotRead]:
    slots = await workflow.refresh_slots()
    if workflow.state.availability_error:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=workflow.state.availability_error)
    return [SlotRead.from_slot(slot) for slot in slots]


@router.get("/{draft_id}/validation", response_model=ValidationRead)
async def validate_draft(
    draft_id: str = Path(...),
    workflow: BookingWorkflow = Depends(get_workflow),
) -> ValidationRead:
    errors = workflow.errors
    return ValidationRead(errors=errors, summary=first_error(errors), ready=not errors)


@router.post("/{draft_id}/submit", response_model=SubmissionRead)
async def submit_draft(
    draft_id: str = Path(...),
    workflow: BookingWorkflow = Depends(get_workflow),
    session: AsyncSession = Depends(get_session),
) -> SubmissionRead:
    # no transaction is held open across the collaborator call
    try:
        result, decision = await workflow.submit()
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"errors": exc.errors, "summary": first_error(exc.errors)},
        )
    except TimeFormatError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="selected slot is invalid, re-select",
        )
    except ConcurrentSubmissionError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="submission already in progress")
    except ReservationConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": exc.code,
                "message": str(exc),
                "slots": [SlotRead.from_slot(slot).model_dump(mode="json") for slot in workflow.state.slots],
            },
        )
    except UnknownSubmissionError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))

    # the booking exists upstream whether or not its defaults are stored
    try:
        async with session.begin():
            await workflow.remember(SqlAlchemyPreferenceRepository(session))
    except SQLAlchemyError:
        logger.exception("failed to commit booking defaults for draft %s", draft_id)

    return SubmissionRead(result=result, decision=decision)


@router.post("/{draft_id}/reset", response_model=DraftRead)
async def reset_draft(
    draft_id: str = Path(...),
    workflow: BookingWorkflow = Depends(get_workflow),
    session: AsyncSession = Depends(get_session),
) -> DraftRead:
    await workflow.reset(SqlAlchemyPreferenceRepository(session))
    return _read(draft_id, workflow)


@router.delete("/{draft_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_draft(
    draft_id: str = Path(...),
    workflow: BookingWorkflow = Depends(get_workflow),
    registry: DraftRegistry = Depends(get_registry),
) -> Response:
    registry.discard(draft_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
