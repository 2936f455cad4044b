from pydantic import Field
from typing import List, Optional
from .base import CamelSchema


class CreateBoardRequest(CamelSchema):
    """Schema for creating a new board."""
    name: str = Field(..., description="Board name")
    columns: List[str] = Field(default_factory=list, description="Titles of the initial columns, in order")


class CreateColumnRequest(CamelSchema):
    """Schema for adding a column to a board."""
    title: str = Field(..., description="Column title")
    color: Optional[str] = Field(default=None, description="Display color")
    position: Optional[int] = Field(default=None, ge=0, description="Position in the board (appended when omitted)")


class UpdateColumnRequest(CamelSchema):
    """Schema for updating a column."""
    title: Optional[str] = Field(default=None, description="New column title")
    color: Optional[str] = Field(default=None, description="New display color")
    position: Optional[int] = Field(default=None, ge=0, description="New position in the board")
    is_active: Optional[bool] = Field(default=None, description="New active status")


# Response Schemas
class ColumnResponse(CamelSchema):
    """Schema for column responses."""
    id: str = Field(..., description="Column ID")
    board_id: str = Field(..., description="Board the column belongs to")
    title: str = Field(..., description="Column title")
    color: Optional[str] = Field(default=None, description="Display color")
    position: int = Field(..., description="Position in the board")
    is_active: bool = Field(..., description="Whether the column is active")


class BoardResponse(CamelSchema):
    """Schema for board responses."""
    id: str = Field(..., description="Board ID")
    name: str = Field(..., description="Board name")
    columns: List[ColumnResponse] = Field(default_factory=list, description="Columns ordered by position")


class UsedInValidation(CamelSchema):
    validation_id: str
    column_id: str
    message: str
    role: str


class UsedInAction(CamelSchema):
    action_id: str
    column_id: str
    trigger: str
    role: str


class ColumnUsageResponse(CamelSchema):
    """Where a column is referenced by active rules, and whether it may move."""
    is_used: bool
    used_in_validations: List[UsedInValidation] = Field(default_factory=list)
    used_in_actions: List[UsedInAction] = Field(default_factory=list)
    can_move: bool
    reason: Optional[str] = None
    related_column_id: Optional[str] = None
