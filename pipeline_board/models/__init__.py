"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Pipeline Board - Models Package                                             ║
║                                                                              ║
║  from pipeline_board.models import Stage, PipelineItem, Card, User, etc.     ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Stage registry
from .stage import (
    Stage,
    STAGES,
    DEFAULT_STAGE,
    PRODUCTION_STAGES,
    STAGE_COLORS,
    coerce_stage,
    stage_to_column_id,
    column_id_to_stage,
)

# Users / roles
from .auth import (
    UserRole,
    User,
    RolePermissions,
)

# Pipeline items
from .pipeline import (
    ItemKind,
    KIND_PREFIXES,
    kind_from_id,
    Customer,
    WorkItem,
    PipelineItem,
    Card,
    Move,
    AuditEntry,
)

__all__ = [
    # Stage
    "Stage",
    "STAGES",
    "DEFAULT_STAGE",
    "PRODUCTION_STAGES",
    "STAGE_COLORS",
    "coerce_stage",
    "stage_to_column_id",
    "column_id_to_stage",
    # Auth
    "UserRole",
    "User",
    "RolePermissions",
    # Pipeline
    "ItemKind",
    "KIND_PREFIXES",
    "kind_from_id",
    "Customer",
    "WorkItem",
    "PipelineItem",
    "Card",
    "Move",
    "AuditEntry",
]
