from __future__ import annotations

import logging
import time
import uuid
from collections import OrderedDict
from functools import lru_cache
from typing import AsyncIterator, Callable

import httpx
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import async_session
from .infrastructure.clients import (
    HttpAvailabilitySource,
    HttpBookingSink,
    HttpDirectory,
    HttpPaymentLinkSink,
    build_http_client,
)
from .infrastructure.repositories import SqlAlchemyPreferenceRepository
from .usecases.workflow import BookingWorkflow

logger = logging.getLogger(__name__)


class DraftRegistry:
    """Open booking forms held in process memory, one workflow per draft id.

    A draft untouched for ``ttl_seconds`` is dropped; past ``max_drafts`` the
    least recently used one goes first.
    """

    def __init__(
        self,
        ttl_seconds: float = 4 * 60 * 60,
        max_drafts: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_drafts = max_drafts
        self._clock = clock
        # draft id -> (operator id, workflow, last access), oldest access first
        self._drafts: OrderedDict[str, tuple[int, BookingWorkflow, float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._drafts)

    def add(self, operator_id: int, workflow: BookingWorkflow) -> str:
        now = self._clock()
        self._evict_expired(now)
        while self._drafts and len(self._drafts) >= self.max_drafts:
            evicted, _ = self._drafts.popitem(last=False)
            logger.info("draft %s evicted, limit of %d open drafts reached", evicted, self.max_drafts)
        draft_id = uuid.uuid4().hex
        self._drafts[draft_id] = (operator_id, workflow, now)
        return draft_id

    def get(self, draft_id: str, operator_id: int) -> BookingWorkflow | None:
        now = self._clock()
        entry = self._drafts.get(draft_id)
        if entry is None or entry[0] != operator_id:
            return None
        if now - entry[2] > self.ttl_seconds:
            del self._drafts[draft_id]
            return None
        self._drafts[draft_id] = (entry[0], entry[1], now)
        self._drafts.move_to_end(draft_id)
        return entry[1]

    def discard(self, draft_id: str) -> bool:
        return self._drafts.pop(draft_id, None) is not None

    def _evict_expired(self, now: float) -> None:
        while self._drafts:
            draft_id, (_, _, touched) = next(iter(self._drafts.items()))
            if now - touched <= self.ttl_seconds:
                return
            del self._drafts[draft_id]
            logger.info("draft %s expired", draft_id)


@lru_cache
def get_registry() -> DraftRegistry:
    settings = get_settings()
    return DraftRegistry(ttl_seconds=settings.draft_ttl_seconds, max_drafts=settings.max_open_drafts)


@lru_cache
def get_http_client() -> httpx.AsyncClient:
    return build_http_client()


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> int:
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-Id header required")
    try:
        return int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid X-User-Id") from exc


async def get_preference_repo(
    session: AsyncSession = Depends(get_session),
) -> SqlAlchemyPreferenceRepository:
    return SqlAlchemyPreferenceRepository(session)


async def get_directory(client: httpx.AsyncClient = Depends(get_http_client)) -> HttpDirectory:
    return HttpDirectory(client)


def build_workflow(client: httpx.AsyncClient, operator_id: int) -> BookingWorkflow:
    return BookingWorkflow(
        HttpAvailabilitySource(client),
        HttpBookingSink(client),
        HttpPaymentLinkSink(client),
        operator_id=operator_id,
    )


async def get_workflow(
    draft_id: str,
    user_id: int = Depends(get_current_user_id),
    registry: DraftRegistry = Depends(get_registry),
) -> BookingWorkflow:
    workflow = registry.get(draft_id, user_id)
    if workflow is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="draft not found")
    return workflow
