from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlmodel import Session, select
from database import get_session
from models.boards import Board, BoardColumn, Task
from models.auth import Token
from helpers.auth import get_auth_token, require_user, require_admin
from helpers.errors import http_error
from rules.errors import RuleEngineError
from rules.store import RuleStore
from .schemas.boards import BoardResponse, ColumnResponse, CreateBoardRequest, CreateColumnRequest
from apis.schemas.auth import MessageResponse
from settings import logger
from typing import List

router = APIRouter(prefix="/boards", tags=["boards"])


def board_columns(board_id: str, db_session: Session) -> List[BoardColumn]:
    statement = (
        select(BoardColumn)
        .where(BoardColumn.board_id == board_id)
        .order_by(BoardColumn.position)
    )
    return list(db_session.exec(statement).all())


def board_response(board: Board, db_session: Session) -> BoardResponse:
    return BoardResponse(
        id=board.id,
        name=board.name,
        columns=[ColumnResponse.model_validate(column) for column in board_columns(board.id, db_session)]
    )


@router.get("")
async def list_boards(
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[BoardResponse]:
    """List all boards."""

    await require_user(token=token, db_session=db_session)

    boards = db_session.exec(select(Board)).all()
    return [board_response(board, db_session) for board in boards]


@router.get("/{board_id}")
async def get_board(
    board_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> BoardResponse:
    """Get board with its columns."""

    await require_user(token=token, db_session=db_session)

    board = db_session.get(Board, board_id)

    if not board:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Board not found"
        )

    return board_response(board, db_session)


@router.post("")
async def create_board(
    board_data: CreateBoardRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> BoardResponse:
    """Create a new board with its initial columns."""

    await require_admin(token=token, db_session=db_session)

    new_board = Board(name=board_data.name)
    db_session.add(new_board)
    db_session.commit()
    db_session.refresh(new_board)

    for position, title in enumerate(board_data.columns):
        db_session.add(BoardColumn(board_id=new_board.id, title=title, position=position))
    db_session.commit()

    logger.info("Board created", extra={"board_id": new_board.id, "columns": len(board_data.columns)})
    return board_response(new_board, db_session)


@router.post("/{board_id}/columns")
async def create_column(
    board_id: str,
    column_data: CreateColumnRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> ColumnResponse:
    """Add a column to a board, shifting the columns after it."""

    await require_admin(token=token, db_session=db_session)

    board = db_session.get(Board, board_id)
    if not board:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Board not found"
        )

    columns = board_columns(board_id, db_session)
    position = len(columns) if column_data.position is None else min(column_data.position, len(columns))

    # Shifting columns breaks adjacency of the rules bound to them
    store = RuleStore(db_session)
    try:
        for column in columns[position:]:
            store.ensure_column_movable(column.id)
    except RuleEngineError as e:
        raise http_error(e)

    for column in columns[position:]:
        column.position += 1
        db_session.add(column)

    new_column = BoardColumn(
        board_id=board_id,
        title=column_data.title,
        color=column_data.color,
        position=position
    )
    db_session.add(new_column)
    db_session.commit()
    db_session.refresh(new_column)

    return ColumnResponse.model_validate(new_column)


@router.delete("/{board_id}")
async def delete_board(
    board_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> MessageResponse:
    """Delete a board. Boards whose columns still hold tasks or rules cannot be deleted."""

    await require_admin(token=token, db_session=db_session)

    board = db_session.get(Board, board_id)

    if not board:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Board not found"
        )

    task = db_session.exec(select(Task).where(Task.board_id == board_id)).first()
    if task:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Board still has tasks"
        )

    store = RuleStore(db_session)
    columns = board_columns(board_id, db_session)
    has_rules = any(
        store.list_validations(column.id, include_inactive=True) or store.list_actions(column.id, include_inactive=True)
        for column in columns
    )
    if has_rules:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Board columns still have validations or actions"
        )

    for column in columns:
        db_session.delete(column)
    db_session.delete(board)
    db_session.commit()

    logger.info("Board deleted", extra={"board_id": board_id})
    return MessageResponse(message="Board deleted successfully")
