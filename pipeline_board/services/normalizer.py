"""
Pipeline Board - Entity Normalizer

Turns the heterogeneous /pipeline feed into uniform PipelineItems.

RÈGLES:
1. stage is trimmed and coerced onto the enumeration (unknown -> Lead)
2. type == "customer"          -> customer item
3. otherwise nested payload under "project" or "job"
   - missing payload           -> degrade to a customer item (never a broken work item)
   - "project-" id prefix      -> project item, else job item
4. reference synthesized from the id when the source has none
5. malformed rows (no nested customer, no id) are dropped, never raised
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import ValidationError
from pipeline_board.models import (
    Customer,
    ItemKind,
    KIND_PREFIXES,
    PipelineItem,
    WorkItem,
    coerce_stage,
)

logger = logging.getLogger("normalizer")

REFERENCE_PREFIXES = {
    ItemKind.CUSTOMER: "CUST",
    ItemKind.JOB: "JOB",
    ItemKind.PROJECT: "PROJ",
}


def synthesize_reference(kind: ItemKind, entity_id: Optional[str]) -> str:
    """CUST-/JOB-/PROJ- + last four characters of the id, upper-cased"""
    suffix = str(entity_id)[-4:].upper() if entity_id else "NEW"
    return f"{REFERENCE_PREFIXES[kind]}-{suffix}"


def _nested_work_item(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    # The server uses either key for the same concept
    payload = raw.get("project") or raw.get("job")
    if isinstance(payload, dict) and payload:
        return payload
    return None


def _count(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _customer_item(raw: Dict[str, Any], customer: Customer, stage) -> PipelineItem:
    return PipelineItem(
        id=f"{KIND_PREFIXES[ItemKind.CUSTOMER]}{customer.id}",
        kind=ItemKind.CUSTOMER,
        entity_id=customer.id,
        stage=stage,
        customer=customer,
        name=customer.name or "",
        reference=synthesize_reference(ItemKind.CUSTOMER, customer.id),
        job_type=", ".join(customer.project_types) if customer.project_types else None,
        measure_date=customer.date_of_measure,
        salesperson=customer.salesperson,
        project_count=_count(raw.get("project_count")),
        created_by=customer.created_by,
        created_at=customer.created_at,
    )


def _work_item(raw: Dict[str, Any], customer: Customer, work: WorkItem, stage) -> PipelineItem:
    raw_id = str(raw["id"])
    kind = ItemKind.PROJECT if raw_id.startswith(KIND_PREFIXES[ItemKind.PROJECT]) else ItemKind.JOB
    entity_id = raw_id[len(KIND_PREFIXES[kind]):] if raw_id.startswith(KIND_PREFIXES[kind]) else (work.id or raw_id)

    if kind == ItemKind.PROJECT:
        name = f"{customer.name or ''} - {work.display_name or 'Project'}"
    else:
        name = customer.name or ""

    return PipelineItem(
        id=f"{KIND_PREFIXES[kind]}{entity_id}",
        kind=kind,
        entity_id=entity_id,
        stage=stage,
        customer=customer,
        work_item=work,
        name=name,
        reference=work.job_reference or synthesize_reference(kind, work.id),
        job_type=work.display_type,
        quote_price=work.quote_price,
        agreed_price=work.agreed_price,
        sold_amount=work.sold_amount,
        deposit1=work.deposit1,
        deposit2=work.deposit2,
        deposit1_paid=work.deposit1_paid,
        deposit2_paid=work.deposit2_paid,
        measure_date=work.measured_on or customer.date_of_measure,
        delivery_date=work.delivery_date,
        salesperson=work.salesperson_name or customer.salesperson,
        created_by=customer.created_by,
        created_at=work.created_at or customer.created_at,
    )


def normalize_item(raw: Any) -> Optional[PipelineItem]:
    """One raw row -> PipelineItem, or None if the row is malformed"""
    if not isinstance(raw, dict) or raw.get("id") in (None, ""):
        logger.warning(f"[NORMALIZER] dropped row without id: {raw!r:.200}")
        return None
    if not isinstance(raw.get("customer"), dict):
        logger.warning(f"[NORMALIZER] dropped {raw.get('id')}: missing nested customer")
        return None

    try:
        customer = Customer.model_validate(raw["customer"])
    except ValidationError as e:
        logger.warning(f"[NORMALIZER] dropped {raw.get('id')}: invalid customer ({e.error_count()} errors)")
        return None

    stage = coerce_stage(raw.get("stage"))

    try:
        if raw.get("type") == "customer":
            return _customer_item(raw, customer, stage)

        payload = _nested_work_item(raw)
        if payload is None:
            logger.info(f"[NORMALIZER] {raw.get('id')} has no job/project payload, degraded to customer item")
            return _customer_item(raw, customer, stage)

        work = WorkItem.model_validate(payload)
        return _work_item(raw, customer, work, stage)
    except ValidationError as e:
        logger.warning(f"[NORMALIZER] dropped {raw.get('id')}: invalid record ({e.error_count()} errors)")
        return None


def normalize_pipeline(raw_items: Any) -> List[PipelineItem]:
    """
    Normalize the whole feed. Ids stay unique: the first occurrence wins
    (a degraded work item may collide with its customer's own row).
    """
    if not isinstance(raw_items, list):
        logger.warning(f"[NORMALIZER] pipeline payload is not a list ({type(raw_items).__name__})")
        return []

    items: List[PipelineItem] = []
    seen = set()
    for raw in raw_items:
        item = normalize_item(raw)
        if item is None:
            continue
        if item.id in seen:
            logger.warning(f"[NORMALIZER] duplicate pipeline id {item.id} dropped")
            continue
        seen.add(item.id)
        items.append(item)
    return items


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except (ValueError, TypeError, AttributeError):
        return None


def days_in_stage(item: PipelineItem, today: Optional[date] = None) -> int:
    """Days since created_at (0 when missing or unparseable)"""
    created = parse_date(item.created_at)
    if created is None:
        return 0
    today = today or date.today()
    return (today - created).days
