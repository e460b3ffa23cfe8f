"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Pipeline Board - Pipeline Item model                                        ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - item.stage is ALWAYS a Stage member (coerced by the normalizer)           ║
║  - item.kind is assigned ONCE at normalization; routing dispatches on it     ║
║  - items and cards are kept 1:1 by id                                        ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, field_validator
from .stage import Stage


class ItemKind(str, Enum):
    CUSTOMER = "customer"
    JOB = "job"
    PROJECT = "project"


# id prefix per kind, e.g. "job-123"
KIND_PREFIXES = {
    ItemKind.CUSTOMER: "customer-",
    ItemKind.JOB: "job-",
    ItemKind.PROJECT: "project-",
}


def kind_from_id(item_id: str) -> Optional[ItemKind]:
    """Kind encoded in a pipeline id prefix (None if no known prefix)"""
    for kind, prefix in KIND_PREFIXES.items():
        if item_id.startswith(prefix):
            return kind
    return None


def _id_to_str(value):
    if value is None:
        return value
    return str(value)


# Display fields are informational: unparseable values become None, never a dropped row

def _lenient_str(value):
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _lenient_float(value):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.replace(",", "").strip())
        except ValueError:
            return None
    return None


def _lenient_bool(value):
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0", ""):
            return False
        return None
    if isinstance(value, (int, float)):
        return bool(value)
    return None


def _lenient_str_list(value):
    if not isinstance(value, list):
        return None
    return [str(v) for v in value if v is not None]


class Customer(BaseModel):
    """Customer record nested in every pipeline row"""
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = ""
    address: Optional[str] = None
    postcode: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    contact_made: Optional[str] = None
    preferred_contact_method: Optional[str] = None
    marketing_opt_in: Optional[bool] = False
    date_of_measure: Optional[str] = None
    stage: Optional[str] = None
    notes: Optional[str] = None
    project_types: Optional[List[str]] = None
    salesperson: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[str] = None
    created_by: Optional[str] = None
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def id_as_str(cls, value):
        return _id_to_str(value)

    @field_validator(
        "name", "address", "postcode", "phone", "email", "contact_made",
        "preferred_contact_method", "date_of_measure", "stage", "notes", "salesperson",
        "status", "created_at", "created_by", "updated_at", "updated_by",
        mode="before",
    )
    @classmethod
    def display_as_str(cls, value):
        return _lenient_str(value)

    @field_validator("marketing_opt_in", mode="before")
    @classmethod
    def opt_in_as_bool(cls, value):
        return _lenient_bool(value)

    @field_validator("project_types", mode="before")
    @classmethod
    def types_as_list(cls, value):
        return _lenient_str_list(value)


class WorkItem(BaseModel):
    """Job or project payload (the server names fields either way)"""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    customer_id: Optional[str] = None
    job_reference: Optional[str] = None
    job_name: Optional[str] = None
    project_name: Optional[str] = None
    job_type: Optional[str] = None
    project_type: Optional[str] = None
    stage: Optional[str] = None
    quote_price: Optional[float] = None
    agreed_price: Optional[float] = None
    sold_amount: Optional[float] = None
    deposit1: Optional[float] = None
    deposit2: Optional[float] = None
    deposit1_paid: bool = False
    deposit2_paid: bool = False
    delivery_date: Optional[str] = None
    measure_date: Optional[str] = None
    date_of_measure: Optional[str] = None
    completion_date: Optional[str] = None
    installation_address: Optional[str] = None
    notes: Optional[str] = None
    salesperson_name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("id", "customer_id", mode="before")
    @classmethod
    def ids_as_str(cls, value):
        return _id_to_str(value)

    @field_validator(
        "job_reference", "job_name", "project_name", "job_type", "project_type", "stage",
        "delivery_date", "measure_date", "date_of_measure", "completion_date",
        "installation_address", "notes", "salesperson_name", "created_at", "updated_at",
        mode="before",
    )
    @classmethod
    def display_as_str(cls, value):
        return _lenient_str(value)

    @field_validator("quote_price", "agreed_price", "sold_amount", "deposit1", "deposit2", mode="before")
    @classmethod
    def amount_as_float(cls, value):
        return _lenient_float(value)

    @field_validator("deposit1_paid", "deposit2_paid", mode="before")
    @classmethod
    def paid_as_bool(cls, value):
        return bool(_lenient_bool(value))

    @property
    def display_name(self) -> Optional[str]:
        return self.project_name or self.job_name

    @property
    def display_type(self) -> Optional[str]:
        return self.project_type or self.job_type

    @property
    def measured_on(self) -> Optional[str]:
        return self.date_of_measure or self.measure_date


class PipelineItem(BaseModel):
    """Uniform unit of work on the board (customer, job or project)"""

    id: str
    kind: ItemKind
    entity_id: str
    stage: Stage
    customer: Customer
    work_item: Optional[WorkItem] = None

    # Display fields
    name: str
    reference: str
    job_type: Optional[str] = None
    quote_price: Optional[float] = None
    agreed_price: Optional[float] = None
    sold_amount: Optional[float] = None
    deposit1: Optional[float] = None
    deposit2: Optional[float] = None
    deposit1_paid: bool = False
    deposit2_paid: bool = False
    measure_date: Optional[str] = None
    delivery_date: Optional[str] = None
    salesperson: Optional[str] = None
    project_count: int = 0
    created_by: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def owner_identity(self) -> Optional[str]:
        """Salesperson, or the record creator when nobody is assigned"""
        return self.salesperson or self.created_by


class Card(BaseModel):
    """Rendered projection of one pipeline item (one per kanban card)"""

    id: str
    item_id: str
    item_kind: ItemKind
    column: str
    stage: Stage
    name: str
    reference: str
    customer_name: str = ""
    customer_address: Optional[str] = None
    customer_phone: Optional[str] = None
    salesperson: Optional[str] = None
    job_type: Optional[str] = None
    measure_date: Optional[str] = None
    delivery_date: Optional[str] = None
    quote_price: Optional[float] = None
    agreed_price: Optional[float] = None
    sold_amount: Optional[float] = None
    deposit1: Optional[float] = None
    deposit2: Optional[float] = None
    deposit1_paid: bool = False
    deposit2_paid: bool = False
    project_count: int = 0


class Move(BaseModel):
    """One card relocated during a single drag gesture (never persisted)"""

    card_id: str
    item_id: str
    from_column: str
    to_column: str
    from_stage: Stage
    to_stage: Stage


class AuditEntry(BaseModel):
    """Client-side record of a confirmed stage change"""

    id: str
    entity_kind: ItemKind
    entity_id: str
    action: str = "update"
    actor: str
    timestamp: str
    summary: str
