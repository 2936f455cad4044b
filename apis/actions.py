from fastapi import APIRouter, Depends
from sqlmodel import Session
from database import get_session
from models.auth import Token
from helpers.auth import get_auth_token, require_admin
from helpers.errors import http_error
from rules.errors import RuleEngineError
from rules.store import RuleStore
from .schemas.rules import RemovalResponse, ActionRequest, ActionResponse

router = APIRouter(prefix="/actions", tags=["actions"])


@router.put("/{action_id}")
async def update_action(
    action_id: str,
    action_data: ActionRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> ActionResponse:
    """Replace an action (Admins only)."""

    await require_admin(token=token, db_session=db_session)

    try:
        action = RuleStore(db_session).update_action(action_id, action_data)
    except RuleEngineError as e:
        raise http_error(e)

    return ActionResponse.model_validate(action)


@router.delete("/{action_id}")
async def delete_action(
    action_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> RemovalResponse:
    """Delete an action and cancel its timers; actions with history are deactivated instead."""

    await require_admin(token=token, db_session=db_session)

    try:
        outcome = RuleStore(db_session).delete_action(action_id)
    except RuleEngineError as e:
        raise http_error(e)

    return RemovalResponse(id=action_id, outcome=outcome)
