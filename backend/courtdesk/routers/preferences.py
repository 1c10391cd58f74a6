from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_current_user_id, get_session
from ..infrastructure.repositories import SqlAlchemyPreferenceRepository
from ..models import BookingMode
from ..schemas import PreferenceRead, PreferenceUpdate

router = APIRouter(prefix="/me", tags=["preferences"])


@router.get("/preferences", response_model=PreferenceRead)
async def get_my_preferences(
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> PreferenceRead:
    repo = SqlAlchemyPreferenceRepository(session)
    pref = await repo.get(user_id)
    if pref is None:
        return PreferenceRead(
            operator_id=user_id,
            venue_id=None,
            duration_minutes=None,
            mode=BookingMode.IMMEDIATE,
            send_receipt_email=True,
        )
    return PreferenceRead(
        operator_id=pref.operator_id,
        venue_id=pref.venue_id,
        duration_minutes=pref.duration_minutes,
        mode=pref.mode,
        send_receipt_email=pref.send_receipt_email,
        updated_at=pref.updated_at,
    )


@router.put("/preferences", response_model=PreferenceRead)
async def put_my_preferences(
    payload: PreferenceUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> PreferenceRead:
    repo = SqlAlchemyPreferenceRepository(session)
    async with session.begin():
        pref = await repo.save(
            user_id,
            venue_id=payload.venue_id,
            duration_minutes=int(payload.duration_minutes) if payload.duration_minutes is not None else None,
            mode=payload.mode,
            send_receipt_email=payload.send_receipt_email,
        )

    return PreferenceRead(
        operator_id=pref.operator_id,
        venue_id=pref.venue_id,
        duration_minutes=pref.duration_minutes,
        mode=pref.mode,
        send_receipt_email=pref.send_receipt_email,
        updated_at=pref.updated_at,
    )
