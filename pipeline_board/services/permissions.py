"""
Pipeline Board - Permission System
Role presets + item-level predicates used by the board and the transition engine.
Roles are presets only: the permission record is the source of truth.
"""

import logging
from typing import Dict, List, Optional, Union
from pipeline_board.models import (
    PipelineItem,
    RolePermissions,
    Stage,
    STAGES,
    PRODUCTION_STAGES,
    User,
    UserRole,
)

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# ROLE PRESETS
# ════════════════════════════════════════════════════════════════════════

ROLE_PRESETS: Dict[UserRole, RolePermissions] = {
    UserRole.MANAGER: RolePermissions(
        can_create=True, can_edit=True, can_delete=True,
        can_view_financials=True, can_drag_drop=True, can_view_all_records=True,
        can_send_quotes=True, can_schedule=True,
    ),
    UserRole.HR: RolePermissions(
        can_create=True, can_edit=True, can_delete=True,
        can_view_financials=True, can_drag_drop=True, can_view_all_records=True,
        can_send_quotes=True, can_schedule=True,
    ),
    UserRole.SALES: RolePermissions(
        can_create=True, can_edit=True, can_delete=False,
        can_view_financials=True, can_drag_drop=True, can_view_all_records=False,
        can_send_quotes=True, can_schedule=False,
    ),
    UserRole.PRODUCTION: RolePermissions(
        can_create=False, can_edit=True, can_delete=False,
        can_view_financials=False, can_drag_drop=True, can_view_all_records=True,
        can_send_quotes=False, can_schedule=False,
    ),
    UserRole.STAFF: RolePermissions(),
}

# Roles allowed to edit any item regardless of ownership
ELEVATED_ROLES = (UserRole.MANAGER, UserRole.HR, UserRole.PRODUCTION)


def resolve_role(role: Union[str, UserRole, None]) -> UserRole:
    """Unknown or missing roles fall back to Staff (read-only)"""
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return UserRole.STAFF


def get_permissions(role: Union[str, UserRole, None]) -> RolePermissions:
    return ROLE_PRESETS[resolve_role(role)]


def _standard_id(value: Optional[str]) -> str:
    return (value or "").strip().lower()


# ════════════════════════════════════════════════════════════════════════
# ITEM PREDICATES
# ════════════════════════════════════════════════════════════════════════

def can_access(item: PipelineItem, user: Optional[User]) -> bool:
    """
    Every authenticated user sees every pipeline item.

    Deliberately ignores can_view_all_records (list screens elsewhere filter
    by ownership for the same role); pending stakeholder confirmation.
    """
    return user is not None


def can_edit(item: PipelineItem, user: Optional[User], role: Union[str, UserRole, None] = None) -> bool:
    """
    May this user change the item's stage?

    Elevated roles: always. Sales: only own records, matched on email OR
    display name (the two upstream systems disagree on which is authoritative).
    """
    if user is None:
        return False
    resolved = resolve_role(role if role is not None else user.role)
    if not get_permissions(resolved).can_edit:
        return False

    if resolved in ELEVATED_ROLES:
        return True

    if resolved == UserRole.SALES:
        owner = _standard_id(item.owner_identity)
        if not owner:
            return False
        return owner == _standard_id(user.email) or owner == _standard_id(user.display_name)

    return False


def can_drag_drop(role: Union[str, UserRole, None]) -> bool:
    return get_permissions(role).can_drag_drop


def can_send_quotes(role: Union[str, UserRole, None]) -> bool:
    return get_permissions(role).can_send_quotes


def visible_stages(role: Union[str, UserRole, None]) -> List[Stage]:
    """Columns (and stage menu entries) offered to a role"""
    if resolve_role(role) == UserRole.PRODUCTION:
        return list(PRODUCTION_STAGES)
    return list(STAGES)


def denied_items(items: List[PipelineItem], user: Optional[User]) -> List[str]:
    """Ids of the items this user may NOT edit (logged)"""
    denied = [item.id for item in items if not can_edit(item, user)]
    if denied:
        logger.warning(
            f"[PERMISSION_DENIED] user={user.email if user else None} "
            f"role={user.role if user else None} items={denied}"
        )
    return denied
