from sqlmodel import Session, select, func
from typing import Optional
from models.boards import Task
from models.messaging import ScoreEntry
from rules.collaborators import ScoreLedger
from settings import logger


class SqlScoreLedger(ScoreLedger):
    """Score ledger kept as one row per point delta."""

    def __init__(self, db_session: Session):
        self.db_session = db_session

    def apply(self, user_id: str, points: int, task: Task, action_id: Optional[str],
              reason: str) -> int:
        self.db_session.add(ScoreEntry(
            user_id=user_id,
            task_id=task.id,
            action_id=action_id,
            points=points,
            reason=reason
        ))
        self.db_session.commit()

        total = self.total_for(user_id)
        logger.info("Score updated", extra={
            "user_id": user_id,
            "task_id": task.id,
            "points": points,
            "total": total
        })
        return total

    def total_for(self, user_id: str) -> int:
        statement = select(func.coalesce(func.sum(ScoreEntry.points), 0)).where(ScoreEntry.user_id == user_id)
        return int(self.db_session.exec(statement).one())
