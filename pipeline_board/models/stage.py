"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Pipeline Board - Stage Registry                                             ║
║                                                                              ║
║  Fixed, ordered catalog of sales pipeline stages.                            ║
║  Order drives column layout only: ANY stage may move to ANY other stage.     ║
║                                                                              ║
║  INVARIANT: every stage held in memory is a member of Stage                  ║
║  (unknown values are coerced to Lead on ingest, never rejected)              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger("stages")


class Stage(str, Enum):
    """Pipeline stages in funnel order"""
    LEAD = "Lead"
    SURVEY = "Survey"
    DESIGN = "Design"
    QUOTE = "Quote"
    ACCEPTED = "Accepted"
    ORDERED = "Ordered"
    PRODUCTION = "Production"
    DELIVERY = "Delivery"
    INSTALLATION = "Installation"
    COMPLETE = "Complete"
    REMEDIAL = "Remedial"
    REJECTED = "Rejected"


STAGES: List[Stage] = list(Stage)

DEFAULT_STAGE = Stage.LEAD

# Post-acceptance subset (production role)
PRODUCTION_STAGES: List[Stage] = [
    Stage.ACCEPTED,
    Stage.ORDERED,
    Stage.PRODUCTION,
    Stage.DELIVERY,
    Stage.INSTALLATION,
    Stage.COMPLETE,
    Stage.REMEDIAL,
]

STAGE_COLORS: Dict[Stage, str] = {
    Stage.LEAD: "#6B7280",
    Stage.SURVEY: "#EC4899",
    Stage.DESIGN: "#10B981",
    Stage.QUOTE: "#3B82F6",
    Stage.ACCEPTED: "#059669",
    Stage.REJECTED: "#6D28D9",
    Stage.ORDERED: "#9333EA",
    Stage.PRODUCTION: "#D97706",
    Stage.DELIVERY: "#0284C7",
    Stage.INSTALLATION: "#16A34A",
    Stage.COMPLETE: "#065F46",
    Stage.REMEDIAL: "#DC2626",
}

_BY_LOWER: Dict[str, Stage] = {s.value.lower(): s for s in Stage}


def coerce_stage(value: Optional[str]) -> Stage:
    """
    Map a raw stage string onto the enumeration.

    Whitespace is trimmed and matching is case-insensitive
    ("accepted " -> Accepted). Anything else becomes Lead.
    """
    if isinstance(value, Stage):
        return value
    if not isinstance(value, str):
        return DEFAULT_STAGE
    stage = _BY_LOWER.get(value.strip().lower())
    if stage is None:
        if value.strip():
            logger.debug(f"[STAGE_COERCED] unknown stage {value!r} -> {DEFAULT_STAGE.value}")
        return DEFAULT_STAGE
    return stage


def stage_to_column_id(stage: Stage) -> str:
    return "col-" + "-".join(Stage(stage).value.lower().split())


_BY_COLUMN: Dict[str, Stage] = {stage_to_column_id(s): s for s in Stage}


def column_id_to_stage(column_id: str) -> Stage:
    """Unknown column ids resolve to Lead"""
    return _BY_COLUMN.get(column_id, DEFAULT_STAGE)
