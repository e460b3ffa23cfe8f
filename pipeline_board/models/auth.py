"""
Pipeline Board - Users, roles and permission records
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    MANAGER = "Manager"
    HR = "HR"
    SALES = "Sales"
    PRODUCTION = "Production"
    STAFF = "Staff"


class User(BaseModel):
    """Authenticated user as returned by the auth collaborator"""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    email: str = ""
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    role: str = UserRole.STAFF.value

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.full_name:
            return self.full_name
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class RolePermissions(BaseModel):
    """Permission record attached to a role preset"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    can_create: bool = Field(False, alias="canCreate")
    can_edit: bool = Field(False, alias="canEdit")
    can_delete: bool = Field(False, alias="canDelete")
    can_view_financials: bool = Field(False, alias="canViewFinancials")
    can_drag_drop: bool = Field(False, alias="canDragDrop")
    can_view_all_records: bool = Field(False, alias="canViewAllRecords")
    can_send_quotes: bool = Field(False, alias="canSendQuotes")
    can_schedule: bool = Field(False, alias="canSchedule")
