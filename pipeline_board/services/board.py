"""
Pipeline Board - Board Projection

Pure derivation: visible columns per role, cards per column, counts.
Recomputed whenever items, filters or search text change; counts are
always len() of the filtered column, never maintained separately.
"""

from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Union
from pydantic import BaseModel
from pipeline_board.models import (
    Card,
    PipelineItem,
    Stage,
    STAGE_COLORS,
    UserRole,
    stage_to_column_id,
)
from pipeline_board.services.normalizer import parse_date
from pipeline_board.services.permissions import get_permissions, visible_stages

ALL = "all"
DATE_RANGE_PRESETS = (ALL, "today", "week", "month")


class Column(BaseModel):
    id: str
    name: Stage
    color: str


class BoardFilters(BaseModel):
    """Conjunctive filters; "all" / None disables a predicate"""

    search: str = ""
    salesperson: str = ALL
    stage: str = ALL
    job_type: str = ALL
    date_range: str = ALL
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class BoardColumn(BaseModel):
    column: Column
    cards: List[Card]

    @property
    def count(self) -> int:
        return len(self.cards)


class Board(BaseModel):
    columns: List[BoardColumn]

    @property
    def counts(self) -> Dict[str, int]:
        return {c.column.id: c.count for c in self.columns}


# ════════════════════════════════════════════════════════════════════════
# COLUMNS / CARDS
# ════════════════════════════════════════════════════════════════════════

def visible_columns(role: Union[str, UserRole, None]) -> List[Column]:
    return [
        Column(id=stage_to_column_id(stage), name=stage, color=STAGE_COLORS[stage])
        for stage in visible_stages(role)
    ]


def build_card(item: PipelineItem) -> Card:
    return Card(
        id=item.id,
        item_id=item.id,
        item_kind=item.kind,
        column=stage_to_column_id(item.stage),
        stage=item.stage,
        name=f"{item.reference} — {item.name}",
        reference=item.reference,
        customer_name=item.customer.name or "",
        customer_address=item.customer.address,
        customer_phone=item.customer.phone,
        salesperson=item.salesperson,
        job_type=item.job_type,
        measure_date=item.measure_date,
        delivery_date=item.delivery_date,
        quote_price=item.quote_price,
        agreed_price=item.agreed_price,
        sold_amount=item.sold_amount,
        deposit1=item.deposit1,
        deposit2=item.deposit2,
        deposit1_paid=item.deposit1_paid,
        deposit2_paid=item.deposit2_paid,
        project_count=item.project_count,
    )


def build_cards(items: Iterable[PipelineItem]) -> List[Card]:
    return [build_card(item) for item in items]


def redact_financials(card: Card) -> Card:
    return card.model_copy(update={
        "quote_price": None,
        "agreed_price": None,
        "sold_amount": None,
        "deposit1": None,
        "deposit2": None,
    })


# ════════════════════════════════════════════════════════════════════════
# FILTERS
# ════════════════════════════════════════════════════════════════════════

def _contains(value: Optional[str], needle: str) -> bool:
    return bool(value) and needle in value.lower()


def matches_search(search: str, name: str, reference: str,
                   address: Optional[str], phone: Optional[str]) -> bool:
    needle = (search or "").strip().lower()
    if not needle:
        return True
    return (
        _contains(name, needle)
        or _contains(reference, needle)
        or _contains(address, needle)
        or _contains(phone, needle)
    )


def matches_date_range(filters: BoardFilters, measure_date: Optional[str], today: date) -> bool:
    """Preset ranges (today / next 7 days / this month) and/or an explicit inclusive range"""
    explicit = filters.date_from is not None or filters.date_to is not None
    if filters.date_range == ALL and not explicit:
        return True

    measured = parse_date(measure_date)
    if measured is None:
        return False

    if filters.date_range == "today" and measured != today:
        return False
    if filters.date_range == "week" and not (today <= measured <= today + timedelta(days=7)):
        return False
    if filters.date_range == "month" and (measured.year, measured.month) != (today.year, today.month):
        return False

    if filters.date_from is not None and measured < filters.date_from:
        return False
    if filters.date_to is not None and measured > filters.date_to:
        return False
    return True


def _matches(filters: BoardFilters, stages: List[Stage], today: date, *, name, reference,
             address, phone, salesperson, stage, job_type, measure_date) -> bool:
    if stage not in stages:
        return False
    if not matches_search(filters.search, name, reference, address, phone):
        return False
    if filters.salesperson != ALL and salesperson != filters.salesperson:
        return False
    if filters.stage != ALL and stage.value != filters.stage:
        return False
    if filters.job_type != ALL and job_type != filters.job_type:
        return False
    return matches_date_range(filters, measure_date, today)


def filter_items(items: Iterable[PipelineItem], filters: BoardFilters,
                 role: Union[str, UserRole, None], today: Optional[date] = None) -> List[PipelineItem]:
    """List view: items matching every active predicate, restricted to the role's stages"""
    today = today or date.today()
    stages = visible_stages(role)
    return [
        item for item in items
        if _matches(
            filters, stages, today,
            name=item.customer.name, reference=item.reference,
            address=item.customer.address, phone=item.customer.phone,
            salesperson=item.salesperson, stage=item.stage,
            job_type=item.job_type, measure_date=item.measure_date,
        )
    ]


def filter_cards(cards: Iterable[Card], filters: BoardFilters,
                 role: Union[str, UserRole, None], today: Optional[date] = None) -> List[Card]:
    today = today or date.today()
    stages = visible_stages(role)
    return [
        card for card in cards
        if _matches(
            filters, stages, today,
            name=card.customer_name, reference=card.reference,
            address=card.customer_address, phone=card.customer_phone,
            salesperson=card.salesperson, stage=card.stage,
            job_type=card.job_type, measure_date=card.measure_date,
        )
    ]


def project_board(cards: Iterable[Card], role: Union[str, UserRole, None],
                  filters: Optional[BoardFilters] = None, today: Optional[date] = None) -> Board:
    """Bucket the filtered cards into the role's visible columns"""
    filters = filters or BoardFilters()
    columns = visible_columns(role)
    buckets: Dict[str, List[Card]] = {c.id: [] for c in columns}
    hide_financials = not get_permissions(role).can_view_financials

    for card in filter_cards(cards, filters, role, today):
        if card.column not in buckets:
            continue
        buckets[card.column].append(redact_financials(card) if hide_financials else card)

    return Board(columns=[BoardColumn(column=c, cards=buckets[c.id]) for c in columns])


# ════════════════════════════════════════════════════════════════════════
# FILTER OPTIONS
# ════════════════════════════════════════════════════════════════════════

def _distinct(values: Iterable[Optional[str]]) -> List[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def salespeople(items: Iterable[PipelineItem]) -> List[str]:
    return _distinct(item.salesperson for item in items)


def job_types(items: Iterable[PipelineItem]) -> List[str]:
    return _distinct(item.job_type for item in items)
