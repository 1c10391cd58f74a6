from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.repositories import PreferenceRepository
from ..models import BookingMode, OperatorPreference


class SqlAlchemyPreferenceRepository(PreferenceRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, operator_id: int) -> OperatorPreference | None:
        result = await self.session.scalar(
            select(OperatorPreference).where(OperatorPreference.operator_id == operator_id)
        )
        return result if isinstance(result, OperatorPreference) else None

    async def save(
        self,
        operator_id: int,
        *,
        venue_id: int | None,
        duration_minutes: int | None,
        mode: BookingMode,
        send_receipt_email: bool,
    ) -> OperatorPreference:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        pref = await self.get(operator_id)
        if pref is None:
            pref = OperatorPreference(operator_id=operator_id)
            self.session.add(pref)
        pref.venue_id = venue_id
        pref.duration_minutes = duration_minutes
        pref.mode = mode
        pref.send_receipt_email = send_receipt_email
        pref.updated_at = now
        await self.session.flush()
        return pref
