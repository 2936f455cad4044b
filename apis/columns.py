from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from database import get_session
from models.auth import Token
from models.boards import BoardColumn, Task
from models.rules import ActionTrigger
from helpers.auth import get_auth_token, require_user, require_admin
from helpers.errors import http_error
from rules.errors import RuleEngineError
from rules.store import RuleStore
from .boards import board_columns
from .schemas.auth import MessageResponse
from .schemas.boards import ColumnResponse, ColumnUsageResponse, UpdateColumnRequest
from .schemas.rules import (
    ActionRequest, ActionResponse, ReorderRequest, ValidationRequest, ValidationResponse
)
from settings import logger
from typing import List, Optional

router = APIRouter(prefix="/columns", tags=["columns"])


def _get_column(column_id: str, db_session: Session) -> BoardColumn:
    column = db_session.get(BoardColumn, column_id)
    if not column:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Column not found"
        )
    return column


@router.put("/{column_id}")
async def update_column(
    column_id: str,
    column_data: UpdateColumnRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> ColumnResponse:
    """Update a column. Position changes renumber the board's columns."""

    await require_admin(token=token, db_session=db_session)
    column = _get_column(column_id, db_session)
    store = RuleStore(db_session)

    try:
        if column_data.position is not None and column_data.position != column.position:
            columns = board_columns(column.board_id, db_session)
            reordered = [other for other in columns if other.id != column.id]
            reordered.insert(min(column_data.position, len(reordered)), column)

            # Every column whose position changes must be free of adjacency-bound rules
            shifted = [other for index, other in enumerate(reordered) if other.position != index]
            for other in shifted:
                store.ensure_column_movable(other.id)
            for index, other in enumerate(reordered):
                other.position = index
                db_session.add(other)

        if column_data.is_active is False and column.is_active:
            store.ensure_column_removable(column.id)
    except RuleEngineError as e:
        raise http_error(e)

    if column_data.title is not None:
        column.title = column_data.title
    if column_data.color is not None:
        column.color = column_data.color
    if column_data.is_active is not None:
        column.is_active = column_data.is_active

    db_session.add(column)
    db_session.commit()
    db_session.refresh(column)

    logger.info("Column updated", extra={"column_id": column.id, "position": column.position})
    return ColumnResponse.model_validate(column)


@router.delete("/{column_id}")
async def delete_column(
    column_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> MessageResponse:
    """Delete an empty column that no rule references."""

    await require_admin(token=token, db_session=db_session)
    column = _get_column(column_id, db_session)

    task = db_session.exec(select(Task).where(Task.column_id == column_id)).first()
    if task:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Column still has tasks"
        )

    store = RuleStore(db_session)
    if store.list_validations(column_id, include_inactive=True) or store.list_actions(column_id, include_inactive=True):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Column still has validations or actions"
        )

    following = [other for other in board_columns(column.board_id, db_session) if other.position > column.position]
    try:
        store.ensure_column_removable(column_id)
        for other in following:
            store.ensure_column_movable(other.id)
    except RuleEngineError as e:
        raise http_error(e)

    for other in following:
        other.position -= 1
        db_session.add(other)
    db_session.delete(column)
    db_session.commit()

    logger.info("Column deleted", extra={"column_id": column_id})
    return MessageResponse(message="Column deleted successfully")


@router.get("/{column_id}/usage")
async def get_column_usage(
    column_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> ColumnUsageResponse:
    """Rules that reference the column, and whether it can be moved."""

    await require_user(token=token, db_session=db_session)

    store = RuleStore(db_session)
    try:
        usage = store.column_usage(column_id)
        verdict = store.can_move_column(column_id)
    except RuleEngineError as e:
        raise http_error(e)

    return ColumnUsageResponse(**usage, **verdict)


# Validations

@router.get("/{column_id}/validations")
async def list_validations(
    column_id: str,
    include_inactive: bool = False,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[ValidationResponse]:
    """List the validations of a column in evaluation order."""

    await require_user(token=token, db_session=db_session)

    try:
        validations = RuleStore(db_session).list_validations(column_id, include_inactive=include_inactive)
    except RuleEngineError as e:
        raise http_error(e)

    return [ValidationResponse.model_validate(validation) for validation in validations]


@router.post("/{column_id}/validations")
async def create_validation(
    column_id: str,
    validation_data: ValidationRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> ValidationResponse:
    """Create a validation (Admins only)."""

    user = await require_admin(token=token, db_session=db_session)

    try:
        validation = RuleStore(db_session).create_validation(column_id, validation_data, actor_id=user.id)
    except RuleEngineError as e:
        raise http_error(e)

    return ValidationResponse.model_validate(validation)


@router.post("/{column_id}/validations/reorder")
async def reorder_validations(
    column_id: str,
    reorder_data: ReorderRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[ValidationResponse]:
    """Set the evaluation order of a column's validations (Admins only)."""

    await require_admin(token=token, db_session=db_session)

    try:
        validations = RuleStore(db_session).reorder_validations(column_id, reorder_data.ids)
    except RuleEngineError as e:
        raise http_error(e)

    return [ValidationResponse.model_validate(validation) for validation in validations]


# Actions

@router.get("/{column_id}/actions")
async def list_actions(
    column_id: str,
    include_inactive: bool = False,
    trigger: Optional[ActionTrigger] = None,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[ActionResponse]:
    """List the actions of a column in execution order."""

    await require_user(token=token, db_session=db_session)

    try:
        actions = RuleStore(db_session).list_actions(column_id, include_inactive=include_inactive, trigger=trigger)
    except RuleEngineError as e:
        raise http_error(e)

    return [ActionResponse.model_validate(action) for action in actions]


@router.post("/{column_id}/actions")
async def create_action(
    column_id: str,
    action_data: ActionRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> ActionResponse:
    """Create an action (Admins only)."""

    user = await require_admin(token=token, db_session=db_session)

    try:
        action = RuleStore(db_session).create_action(column_id, action_data, actor_id=user.id)
    except RuleEngineError as e:
        raise http_error(e)

    return ActionResponse.model_validate(action)


@router.post("/{column_id}/actions/reorder")
async def reorder_actions(
    column_id: str,
    reorder_data: ReorderRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[ActionResponse]:
    """Set the execution order of a column's actions (Admins only)."""

    await require_admin(token=token, db_session=db_session)

    try:
        actions = RuleStore(db_session).reorder_actions(column_id, reorder_data.ids)
    except RuleEngineError as e:
        raise http_error(e)

    return [ActionResponse.model_validate(action) for action in actions]
