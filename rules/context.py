"""Move context shared by the evaluators, and the origin/adjacency gating of rules."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from models.auth import User
from models.boards import BoardColumn, Task
from models.rules import ActionTrigger, ColumnAction, ColumnValidation


@dataclass
class MoveContext:
    """A task transition between two columns (or a stay in one)."""
    task: Task
    to_column: BoardColumn
    from_column: Optional[BoardColumn] = None
    actor: Optional[User] = None
    action_data: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    origin_declared: bool = True

    @property
    def from_column_id(self) -> Optional[str]:
        return self.from_column.id if self.from_column else None

    @property
    def actor_id(self) -> Optional[str]:
        return self.actor.id if self.actor else None

    def is_forward_adjacent(self) -> bool:
        if self.from_column is None:
            return False
        return self.to_column.position - self.from_column.position == 1


Rule = Union[ColumnValidation, ColumnAction]


def rule_applies(rule: Rule, context: MoveContext,
                 trigger: Optional[ActionTrigger] = None) -> bool:
    """Whether a rule's origin and adjacency gates admit this move.

    `fromColumnId` names the column the task must have come from. For
    on_exit actions (which live on the origin column) it names the
    counterpart of the move instead, i.e. the destination. Adjacency only
    admits forward moves of exactly one position. Gated rules never apply to
    moves without a declared origin.
    """
    gated = bool(rule.from_column_id) or rule.require_adjacent_position
    if not gated:
        return True
    if context.from_column is None or not context.origin_declared:
        return False

    if rule.from_column_id:
        expected = context.to_column.id if trigger == ActionTrigger.ON_EXIT else context.from_column.id
        if rule.from_column_id != expected:
            return False

    if rule.require_adjacent_position and not context.is_forward_adjacent():
        return False

    return True
