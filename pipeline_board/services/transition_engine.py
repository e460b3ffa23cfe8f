"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Pipeline Board - Transition Engine                                          ║
║                                                                              ║
║  SEUL CE MODULE mutates board state outside a full refetch.                  ║
║                                                                              ║
║  Per move: Pending -> Optimistically-Applied -> Confirmed | Reverted         ║
║                                                                              ║
║  INVARIANTS:                                                                 ║
║  - can_edit is checked for EVERY moved item before ANY request is sent       ║
║  - one denied item aborts the whole batch (no state change, no request)      ║
║  - the snapshot is taken strictly before the optimistic apply                ║
║  - ANY failed request reverts the WHOLE batch, even confirmed moves          ║
║  - success keeps the optimistic state as final (no refetch)                  ║
║                                                                              ║
║  Overlapping batches are NOT serialized: a second batch started before the   ║
║  first one joins snapshots the first batch's optimistic state.               ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from pydantic import BaseModel
from pipeline_board import config
from pipeline_board.models import (
    Card,
    ItemKind,
    Move,
    PipelineItem,
    Stage,
    User,
    column_id_to_stage,
    stage_to_column_id,
)
from pipeline_board.services import notifier as messages
from pipeline_board.services.audit_trail import AuditTrail
from pipeline_board.services.board import build_cards
from pipeline_board.services.crm_api import CrmApiClient, StageRoute, resolve_route
from pipeline_board.services.errors import AuthorizationDenied, NetworkFailure, UnknownPipelineItem
from pipeline_board.services.notifier import Notifier
from pipeline_board.services.permissions import (
    can_drag_drop,
    can_edit,
    can_send_quotes,
    denied_items,
    visible_stages,
)

logger = logging.getLogger("transition_engine")


# ════════════════════════════════════════════════════════════════════════════
# SHARED BOARD STATE
# ════════════════════════════════════════════════════════════════════════════

class BoardSnapshot(BaseModel):
    items: List[PipelineItem]
    cards: List[Card]


class BoardState:
    """
    The only shared mutable state: pipeline items and their cards (1:1 by id).

    Mutated by the transition engine, or wholesale-replaced by a fetch.
    """

    def __init__(self, items: Optional[Iterable[PipelineItem]] = None):
        self.items: List[PipelineItem] = []
        self.cards: List[Card] = []
        if items is not None:
            self.replace(items)

    def replace(self, items: Iterable[PipelineItem]):
        self.items = list(items)
        self.cards = build_cards(self.items)

    def snapshot(self) -> BoardSnapshot:
        return BoardSnapshot(
            items=[item.model_copy(deep=True) for item in self.items],
            cards=[card.model_copy(deep=True) for card in self.cards],
        )

    def restore(self, snapshot: BoardSnapshot):
        self.items = [item.model_copy(deep=True) for item in snapshot.items]
        self.cards = [card.model_copy(deep=True) for card in snapshot.cards]

    def find_item(self, item_id: str) -> Optional[PipelineItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def find_card(self, card_id: str) -> Optional[Card]:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def set_stage(self, item_id: str, stage: Stage):
        """Move one item AND its card (never one without the other)"""
        stage = Stage(stage)
        column = stage_to_column_id(stage)
        self.items = [
            item.model_copy(update={"stage": stage}) if item.id == item_id else item
            for item in self.items
        ]
        self.cards = [
            card.model_copy(update={"stage": stage, "column": column}) if card.item_id == item_id else card
            for card in self.cards
        ]


# ════════════════════════════════════════════════════════════════════════════
# TRANSACTION
# ════════════════════════════════════════════════════════════════════════════

class StageTransaction:
    """
    One drag batch: before/after snapshots, apply() and its inverse revert().
    """

    def __init__(self, state: BoardState, moves: List[Move]):
        self.state = state
        self.moves = moves
        self.before: Optional[BoardSnapshot] = state.snapshot()
        self.after: Optional[BoardSnapshot] = None
        self.status = "pending"

    def apply(self):
        if self.status != "pending":
            raise RuntimeError(f"cannot apply a {self.status} transaction")
        for move in self.moves:
            self.state.set_stage(move.item_id, move.to_stage)
        self.after = self.state.snapshot()
        self.status = "applied"

    def commit(self):
        if self.status != "applied":
            raise RuntimeError(f"cannot commit a {self.status} transaction")
        self.before = None
        self.status = "confirmed"

    def revert(self):
        if self.status != "applied":
            raise RuntimeError(f"cannot revert a {self.status} transaction")
        self.state.restore(self.before)
        self.before = None
        self.status = "reverted"


# ════════════════════════════════════════════════════════════════════════════
# RESULTS
# ════════════════════════════════════════════════════════════════════════════

class TransitionStatus(str, Enum):
    NOOP = "noop"
    DENIED = "denied"
    COMMITTED = "committed"
    REVERTED = "reverted"
    FAILED = "failed"


class TransitionResult(BaseModel):
    status: TransitionStatus
    moves: List[Move] = []
    error: Optional[str] = None
    failed_item_ids: List[str] = []


CardLike = Union[Card, Mapping[str, Any]]


def _card_field(card: CardLike, name: str) -> Any:
    if isinstance(card, Mapping):
        return card.get(name)
    return getattr(card, name, None)


def diff_moves(previous: Iterable[Card], next_cards: Iterable[CardLike]) -> List[Move]:
    """Cards whose column changed (reordering inside a column is not a move)"""
    prev_by_id = {card.id: card for card in previous}
    # A card listed twice keeps its last reported column
    latest: Dict[Any, CardLike] = {}
    for nxt in next_cards:
        latest[_card_field(nxt, "id")] = nxt

    moves: List[Move] = []
    for nxt in latest.values():
        prev = prev_by_id.get(_card_field(nxt, "id"))
        column = _card_field(nxt, "column")
        if prev is None or column is None or prev.column == column:
            continue
        moves.append(Move(
            card_id=prev.id,
            item_id=prev.item_id,
            from_column=prev.column,
            to_column=column,
            from_stage=prev.stage,
            to_stage=column_id_to_stage(column),
        ))
    return moves


# ════════════════════════════════════════════════════════════════════════════
# ENGINE
# ════════════════════════════════════════════════════════════════════════════

class TransitionEngine:
    def __init__(
        self,
        state: BoardState,
        client: CrmApiClient,
        user: Optional[User],
        audit: Optional[AuditTrail] = None,
        notifier: Optional[Notifier] = None,
        move_reason: str = config.KANBAN_MOVE_REASON,
    ):
        self.state = state
        self.client = client
        self.user = user
        self.audit = audit if audit is not None else AuditTrail()
        self.notifier = notifier if notifier is not None else Notifier()
        self.move_reason = move_reason

    @property
    def actor(self) -> Optional[str]:
        return self.user.email if self.user and self.user.email else None

    @property
    def role(self) -> Optional[str]:
        return self.user.role if self.user else None

    def _gate(self, moves: List[Move]) -> List[PipelineItem]:
        """Resolve every moved item and check can_edit for ALL of them"""
        if not can_drag_drop(self.role):
            raise AuthorizationDenied(messages.MSG_NO_DRAG_PERMISSION, [m.item_id for m in moves])

        items: List[PipelineItem] = []
        unknown: List[str] = []
        for move in moves:
            item = self.state.find_item(move.item_id)
            if item is None:
                unknown.append(move.item_id)
            else:
                items.append(item)

        allowed = visible_stages(self.role)
        hidden = [m.item_id for m in moves if m.to_stage not in allowed]
        if hidden:
            logger.warning(f"[PERMISSION_DENIED] role={self.role} cannot target stages of {hidden}")

        denied = unknown + hidden + [i for i in denied_items(items, self.user) if i not in hidden]
        if denied:
            raise AuthorizationDenied(messages.MSG_BATCH_DENIED, denied)
        return items

    async def apply_drag(self, next_cards: Iterable[CardLike]) -> TransitionResult:
        """
        Handle one drag gesture: diff, gate, snapshot, optimistic apply,
        concurrent dispatch, join, then commit or revert the whole batch.
        """
        moves = diff_moves(self.state.cards, next_cards)
        if not moves:
            logger.debug("[TRANSITION] no card changed column, nothing to do")
            return TransitionResult(status=TransitionStatus.NOOP)

        try:
            items = self._gate(moves)
        except AuthorizationDenied as e:
            logger.warning(f"[TRANSITION] batch denied for {self.actor}: {e.item_ids}")
            self.notifier.error(str(e))
            return TransitionResult(
                status=TransitionStatus.DENIED, moves=moves,
                error=str(e), failed_item_ids=e.item_ids,
            )

        routes: List[StageRoute] = [
            resolve_route(item, move.to_stage, self.move_reason, self.actor)
            for item, move in zip(items, moves)
        ]

        txn = StageTransaction(self.state, moves)
        txn.apply()
        logger.info(
            "[TRANSITION] optimistic apply: "
            + ", ".join(f"{m.item_id} {m.from_stage.value}->{m.to_stage.value}" for m in moves)
        )

        try:
            results = await asyncio.gather(
                *(self.client.update_stage(route, item_id=move.item_id) for route, move in zip(routes, moves)),
                return_exceptions=True,
            )
        except BaseException:
            # Cancelled while joining: never leave unconfirmed moves on the board
            txn.revert()
            logger.warning(f"[TRANSITION] batch of {len(moves)} cancelled before the join, reverted")
            self.notifier.error(messages.MSG_BATCH_REVERTED)
            raise

        failed = [
            (move, result) for move, result in zip(moves, results)
            if isinstance(result, BaseException)
        ]
        if failed:
            txn.revert()
            for move, result in failed:
                logger.warning(f"[TRANSITION] {move.item_id} -> {move.to_stage.value} failed: {result}")
            logger.warning(f"[TRANSITION] batch of {len(moves)} reverted ({len(failed)} failed)")
            self.notifier.error(messages.MSG_BATCH_REVERTED)
            # Cancellation is not a server answer: surface it after restoring state
            for _, result in failed:
                if not isinstance(result, Exception):
                    raise result
            return TransitionResult(
                status=TransitionStatus.REVERTED, moves=moves,
                error=str(failed[0][1]),
                failed_item_ids=[move.item_id for move, _ in failed],
            )

        txn.commit()
        for item, move in zip(items, moves):
            self.audit.record_stage_change(
                item.kind, item.id, self.actor, move.to_stage, self.move_reason,
                old_stage=move.from_stage,
            )
        logger.info(f"[TRANSITION] batch of {len(moves)} confirmed by {self.actor}")

        await self._run_automations([(item, move.to_stage) for item, move in zip(items, moves)])
        return TransitionResult(status=TransitionStatus.COMMITTED, moves=moves)

    async def change_stage(
        self,
        item_id: str,
        stage: Stage,
        reason: str,
        failure_message: str = messages.MSG_STAGE_CHANGE_FAILED,
    ) -> TransitionResult:
        """
        Single-item change (stage menu / quick action).

        No snapshot and no optimistic apply: local state only moves once the
        server confirmed. A failure is reported, nothing is rolled back.
        """
        stage = Stage(stage)
        item = self.state.find_item(item_id)
        if item is None or not can_edit(item, self.user):
            error = UnknownPipelineItem(item_id) if item is None else AuthorizationDenied(
                messages.MSG_ITEM_DENIED, [item_id])
            logger.warning(f"[TRANSITION] stage change denied for {self.actor} on {item_id}: {error}")
            self.notifier.error(messages.MSG_ITEM_DENIED)
            return TransitionResult(status=TransitionStatus.DENIED, error=str(error), failed_item_ids=[item_id])

        if stage not in visible_stages(self.role):
            logger.warning(f"[PERMISSION_DENIED] role={self.role} cannot move {item_id} to {stage.value}")
            self.notifier.error(messages.MSG_STAGE_NOT_ALLOWED)
            return TransitionResult(
                status=TransitionStatus.DENIED, error=messages.MSG_STAGE_NOT_ALLOWED, failed_item_ids=[item_id],
            )

        move = Move(
            card_id=item.id,
            item_id=item.id,
            from_column=stage_to_column_id(item.stage),
            to_column=stage_to_column_id(stage),
            from_stage=item.stage,
            to_stage=stage,
        )
        route = resolve_route(item, stage, reason, self.actor)
        try:
            await self.client.update_stage(route, item_id=item.id)
        except NetworkFailure as e:
            logger.warning(f"[TRANSITION] {item.id} -> {stage.value} failed: {e}")
            self.notifier.error(failure_message)
            return TransitionResult(
                status=TransitionStatus.FAILED, moves=[move],
                error=str(e), failed_item_ids=[item.id],
            )

        self.state.set_stage(item.id, stage)
        self.audit.record_stage_change(item.kind, item.id, self.actor, stage, reason, old_stage=item.stage)
        logger.info(f"[TRANSITION] {item.id} {item.stage.value}->{stage.value} confirmed by {self.actor}")

        await self._run_automations([(item, stage)])
        return TransitionResult(status=TransitionStatus.COMMITTED, moves=[move])

    async def quick_reject(self, item_id: str) -> TransitionResult:
        return await self.change_stage(
            item_id, Stage.REJECTED, config.QUICK_REJECT_REASON,
            failure_message=messages.MSG_QUICK_REJECT_FAILED,
        )

    async def send_quote(self, item_id: str) -> bool:
        if not can_send_quotes(self.role):
            self.notifier.error(messages.MSG_QUOTES_DENIED)
            return False
        item = self.state.find_item(item_id)
        if item is None:
            logger.warning(f"[QUOTE] unknown item {item_id}")
            self.notifier.error(messages.MSG_QUOTE_FAILED)
            return False
        try:
            await self.client.create_quote(item.entity_id)
        except NetworkFailure as e:
            logger.warning(f"[QUOTE] {item_id} failed: {e}")
            self.notifier.error(messages.MSG_QUOTE_FAILED)
            return False
        self.notifier.success(messages.MSG_QUOTE_SENT)
        return True

    # ==================== AUTOMATIONS ====================

    async def _run_automations(self, transitions: List[Tuple[PipelineItem, Stage]]):
        """
        Side effects of confirmed job transitions (fire-and-forget):
        -> Quote     : create quote
        -> Accepted  : create invoice
        Failures are logged and never change the transition outcome.
        """
        if not can_send_quotes(self.role):
            return

        calls = []
        for item, stage in transitions:
            if item.kind != ItemKind.JOB:
                continue
            if stage == Stage.QUOTE:
                calls.append((item.id, "quote", self.client.create_quote(item.entity_id)))
            elif stage == Stage.ACCEPTED:
                calls.append((item.id, "invoice", self.client.create_invoice(item.entity_id)))

        if not calls:
            return

        results = await asyncio.gather(*(c for _, _, c in calls), return_exceptions=True)
        for (item_id, kind, _), result in zip(calls, results):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"[AUTOMATION] {kind} for {item_id} failed: {result}")
            else:
                logger.info(f"[AUTOMATION] {kind} created for {item_id}")
