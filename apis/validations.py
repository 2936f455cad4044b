from fastapi import APIRouter, Depends
from sqlmodel import Session
from database import get_session
from models.auth import Token
from helpers.auth import get_auth_token, require_admin
from helpers.errors import http_error
from rules.errors import RuleEngineError
from rules.store import RuleStore
from .schemas.rules import RemovalResponse, ValidationRequest, ValidationResponse

router = APIRouter(prefix="/validations", tags=["validations"])


@router.put("/{validation_id}")
async def update_validation(
    validation_id: str,
    validation_data: ValidationRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> ValidationResponse:
    """Replace a validation (Admins only)."""

    await require_admin(token=token, db_session=db_session)

    try:
        validation = RuleStore(db_session).update_validation(validation_id, validation_data)
    except RuleEngineError as e:
        raise http_error(e)

    return ValidationResponse.model_validate(validation)


@router.delete("/{validation_id}")
async def delete_validation(
    validation_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> RemovalResponse:
    """Delete a validation; validations with history are deactivated instead."""

    await require_admin(token=token, db_session=db_session)

    try:
        outcome = RuleStore(db_session).delete_validation(validation_id)
    except RuleEngineError as e:
        raise http_error(e)

    return RemovalResponse(id=validation_id, outcome=outcome)
