"""
Pipeline Board - Board session

One loaded board for one user: fetch -> normalize -> access filter -> state.
Items are replaced wholesale on every load (never merged).
A failed load leaves an explicit error state; retry is manual only.
"""

import logging
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional
from pipeline_board.models import PipelineItem, Stage, User
from pipeline_board.services.audit_trail import AuditTrail
from pipeline_board.services.board import Board, BoardFilters, filter_items, project_board
from pipeline_board.services.crm_api import CrmApiClient
from pipeline_board.services.errors import NetworkFailure, RequestTimeout
from pipeline_board.services.normalizer import normalize_pipeline
from pipeline_board.services.notifier import Notifier
from pipeline_board.services.permissions import can_access
from pipeline_board.services.transition_engine import (
    BoardState,
    CardLike,
    TransitionEngine,
    TransitionResult,
    TransitionStatus,
)

logger = logging.getLogger("board_session")

MSG_NOT_AUTHENTICATED = "User not authenticated."
MSG_TIMEOUT = "Request timeout. Please refresh the page."


class SessionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    TIMEOUT = "timeout"


class PipelineSession:
    def __init__(
        self,
        client: CrmApiClient,
        user: Optional[User],
        audit: Optional[AuditTrail] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.client = client
        self.user = user
        self.state = BoardState()
        self.audit = audit if audit is not None else AuditTrail()
        self.notifier = notifier if notifier is not None else Notifier()
        self.engine = TransitionEngine(self.state, client, user, audit=self.audit, notifier=self.notifier)
        self.status = SessionStatus.IDLE
        self.error: Optional[str] = None

    @property
    def items(self) -> List[PipelineItem]:
        return self.state.items

    # ==================== LOAD ====================

    async def load(self, force: bool = False) -> SessionStatus:
        if self.user is None:
            self.status = SessionStatus.ERROR
            self.error = MSG_NOT_AUTHENTICATED
            return self.status

        self.status = SessionStatus.LOADING
        self.error = None
        try:
            raw = await self.client.fetch_pipeline(use_cache=not force)
        except RequestTimeout:
            self.status = SessionStatus.TIMEOUT
            self.error = MSG_TIMEOUT
            logger.warning(f"[BOARD] pipeline fetch timed out for {self.user.email}")
            return self.status
        except NetworkFailure as e:
            self.status = SessionStatus.ERROR
            self.error = str(e) or "Failed to load data"
            logger.warning(f"[BOARD] pipeline fetch failed for {self.user.email}: {e}")
            return self.status

        items = [item for item in normalize_pipeline(raw) if can_access(item, self.user)]
        self.state.replace(items)
        self.status = SessionStatus.READY
        logger.info(f"[BOARD] loaded {len(items)} pipeline items for {self.user.email}")
        return self.status

    async def retry(self) -> SessionStatus:
        return await self.load(force=True)

    # ==================== READ ====================

    def board(self, filters: Optional[BoardFilters] = None, today: Optional[date] = None) -> Board:
        return project_board(self.state.cards, self.user.role if self.user else None, filters, today)

    def list_items(self, filters: Optional[BoardFilters] = None, today: Optional[date] = None) -> List[PipelineItem]:
        return filter_items(self.state.items, filters or BoardFilters(), self.user.role if self.user else None, today)

    # ==================== WRITE ====================

    async def drag(self, next_cards: Iterable[CardLike]) -> TransitionResult:
        """Optimistic batch; no refetch after success"""
        return await self.engine.apply_drag(next_cards)

    async def change_stage(self, item_id: str, stage: Stage, reason: str) -> TransitionResult:
        result = await self.engine.change_stage(item_id, stage, reason)
        if result.status == TransitionStatus.COMMITTED:
            await self.load(force=True)
        return result

    async def quick_reject(self, item_id: str) -> TransitionResult:
        result = await self.engine.quick_reject(item_id)
        if result.status == TransitionStatus.COMMITTED:
            await self.load(force=True)
        return result

    async def send_quote(self, item_id: str) -> bool:
        return await self.engine.send_quote(item_id)
